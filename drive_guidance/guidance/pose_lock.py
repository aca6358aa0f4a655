from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from drive_guidance.guidance.control_laws import rotation_command, translation_command
from drive_guidance.plan import FieldPoseFeedback, PoseEstimator, Tuning
from drive_guidance.types import OverlayOutput, OverrideMask, Pose2d, VelocityCommand
from drive_guidance.utils.geometry import wrap_pi

logger = logging.getLogger(__name__)


class PoseLockOverlay:
    """
    Hold the robot at the field pose it had when the overlay was enabled.

    Drives translation and heading back to the captured pose. Overrides nothing
    while there is no captured pose or the current estimate is stale.
    """

    def __init__(
        self,
        pose_estimator: PoseEstimator,
        tuning: Tuning | None = None,
        max_age_sec: float = FieldPoseFeedback.DEFAULT_MAX_AGE_SEC,
        min_quality: float = FieldPoseFeedback.DEFAULT_MIN_QUALITY,
    ) -> None:
        if pose_estimator is None:
            raise ValueError("pose_estimator is required")
        self.pose_estimator = pose_estimator
        self.tuning = tuning or Tuning()
        self.max_age_sec = float(max_age_sec)
        self.min_quality = float(min_quality)
        self._target: Optional[Pose2d] = None
        self._last_output = OverlayOutput.zero()

    @property
    def target(self) -> Optional[Pose2d]:
        return self._target

    def on_enable(self, dt: float = 0.0) -> None:
        est = self.pose_estimator.get_estimate()
        self._target = est.pose if est is not None and est.has_pose else None
        if self._target is None:
            logger.info("Pose lock enabled without a pose; holding nothing")

    def on_disable(self, dt: float = 0.0) -> None:
        self._target = None

    def get(self, dt: float) -> OverlayOutput:
        est = self.pose_estimator.get_estimate()
        if self._target is None or est is None or not est.has_pose:
            self._last_output = OverlayOutput.zero()
            return self._last_output
        if est.age_sec > self.max_age_sec or est.quality < self.min_quality:
            self._last_output = OverlayOutput.zero()
            return self._last_output

        robot_to_target = est.pose.inverse().then(self._target)
        forward, lateral = translation_command(robot_to_target.x, robot_to_target.y, self.tuning)
        angular = rotation_command(wrap_pi(robot_to_target.heading), self.tuning)
        self._last_output = OverlayOutput(VelocityCommand(forward, lateral, angular), OverrideMask.ALL)
        return self._last_output

    def get_status_dict(self) -> Dict[str, Any]:
        return {
            "target": "none" if self._target is None else self._target.to_dict(),
            "command": self._last_output.command.to_dict(),
            "mask": self._last_output.mask.to_dict(),
        }
