"""Fluent construction of `GuidancePlan` objects.

    plan = (
        PlanBuilder()
        .translate_to_anchor_point(ANY_ANCHOR, forward=-12.0)
        .aim_at_anchor_center(ANY_ANCHOR)
        .observation(camera)
        .field_pose(localizer, layout)
        .build()
    )

`build()` checks every target/feedback combination up front and reports all
problems in one `PlanConfigError`, instead of producing an overlay that never
overrides anything at runtime.
"""

from __future__ import annotations

import math
from typing import List, Optional

from drive_guidance.field.anchor_layout import AnchorLayout
from drive_guidance.plan import (
    ControlFrames,
    FieldPoseFeedback,
    Gates,
    GuidanceFeedback,
    GuidancePlan,
    ObservationFeedback,
    ObservationSource,
    PlanConfigError,
    PoseEstimator,
    Tuning,
)
from drive_guidance.targets import (
    AIM_TARGET_TYPES,
    ANY_ANCHOR,
    TRANSLATION_TARGET_TYPES,
    AbsoluteHeading,
    AbsolutePoint,
    AnchorRelativePoint,
    SessionRelativePoint,
    uses_any_anchor,
)
from drive_guidance.types import LossPolicy, Pose2d


class PlanBuilder:
    def __init__(self) -> None:
        self._translation_target = None
        self._aim_target = None
        self._control_frames = ControlFrames.robot_center()
        self._tuning = Tuning.defaults()

        self._observation_source: Optional[ObservationSource] = None
        self._obs_max_age_sec = ObservationFeedback.DEFAULT_MAX_AGE_SEC
        self._obs_min_quality = ObservationFeedback.DEFAULT_MIN_QUALITY

        self._pose_estimator: Optional[PoseEstimator] = None
        self._anchor_layout: Optional[AnchorLayout] = None
        self._pose_max_age_sec = FieldPoseFeedback.DEFAULT_MAX_AGE_SEC
        self._pose_min_quality = FieldPoseFeedback.DEFAULT_MIN_QUALITY

        self._gates: Optional[Gates] = None
        self._prefer_obs_rotation = True
        self._loss_policy = LossPolicy.PASS_THROUGH

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def _set_translation(self, target) -> "PlanBuilder":
        if self._translation_target is not None:
            raise PlanConfigError("translation target already configured")
        self._translation_target = target
        return self

    def _set_aim(self, target) -> "PlanBuilder":
        if self._aim_target is not None:
            raise PlanConfigError("aim target already configured")
        self._aim_target = target
        return self

    def translate_to(self, target) -> "PlanBuilder":
        if not isinstance(target, TRANSLATION_TARGET_TYPES):
            raise TypeError(f"Unsupported translation target: {type(target).__name__}")
        return self._set_translation(target)

    def aim_at(self, target) -> "PlanBuilder":
        if not isinstance(target, AIM_TARGET_TYPES):
            raise TypeError(f"Unsupported aim target: {type(target).__name__}")
        return self._set_aim(target)

    def translate_to_point(self, x: float, y: float) -> "PlanBuilder":
        return self._set_translation(AbsolutePoint(float(x), float(y)))

    def translate_to_anchor_point(self, anchor_id: int = ANY_ANCHOR, forward: float = 0.0, left: float = 0.0) -> "PlanBuilder":
        return self._set_translation(AnchorRelativePoint(anchor_id, float(forward), float(left)))

    def translate_to_session_point(self, forward: float, left: float = 0.0) -> "PlanBuilder":
        return self._set_translation(SessionRelativePoint(float(forward), float(left)))

    def aim_at_point(self, x: float, y: float) -> "PlanBuilder":
        return self._set_aim(AbsolutePoint(float(x), float(y)))

    def aim_at_heading(self, heading_rad: float) -> "PlanBuilder":
        return self._set_aim(AbsoluteHeading(float(heading_rad)))

    def aim_at_heading_deg(self, heading_deg: float) -> "PlanBuilder":
        return self._set_aim(AbsoluteHeading.from_degrees(float(heading_deg)))

    def aim_at_anchor_point(self, anchor_id: int = ANY_ANCHOR, forward: float = 0.0, left: float = 0.0) -> "PlanBuilder":
        return self._set_aim(AnchorRelativePoint(anchor_id, float(forward), float(left)))

    def aim_at_anchor_center(self, anchor_id: int = ANY_ANCHOR) -> "PlanBuilder":
        return self._set_aim(AnchorRelativePoint(anchor_id, 0.0, 0.0))

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def observation(
        self,
        source: ObservationSource,
        max_age_sec: float = ObservationFeedback.DEFAULT_MAX_AGE_SEC,
        min_quality: float = ObservationFeedback.DEFAULT_MIN_QUALITY,
    ) -> "PlanBuilder":
        if source is None:
            raise PlanConfigError("observation(...): source is required")
        self._observation_source = source
        self._obs_max_age_sec = float(max_age_sec)
        self._obs_min_quality = float(min_quality)
        return self

    def field_pose(
        self,
        pose_estimator: PoseEstimator,
        anchor_layout: Optional[AnchorLayout] = None,
        max_age_sec: float = FieldPoseFeedback.DEFAULT_MAX_AGE_SEC,
        min_quality: float = FieldPoseFeedback.DEFAULT_MIN_QUALITY,
    ) -> "PlanBuilder":
        if pose_estimator is None:
            raise PlanConfigError("field_pose(...): pose_estimator is required")
        self._pose_estimator = pose_estimator
        if anchor_layout is not None:
            self._anchor_layout = anchor_layout
        self._pose_max_age_sec = float(max_age_sec)
        self._pose_min_quality = float(min_quality)
        return self

    def anchor_layout(self, layout: AnchorLayout) -> "PlanBuilder":
        self._anchor_layout = layout
        return self

    def gates(self, enter_range: float, exit_range: float, blend_sec: float = 0.15) -> "PlanBuilder":
        self._gates = Gates(float(enter_range), float(exit_range), float(blend_sec))
        return self

    def prefer_observation_for_rotation(self, prefer: bool = True) -> "PlanBuilder":
        self._prefer_obs_rotation = bool(prefer)
        return self

    def loss_policy(self, policy: LossPolicy | str) -> "PlanBuilder":
        self._loss_policy = LossPolicy(policy)
        return self

    # ------------------------------------------------------------------
    # Frames / tuning
    # ------------------------------------------------------------------

    def control_frames(self, frames: ControlFrames) -> "PlanBuilder":
        self._control_frames = frames
        return self

    def translation_frame(self, robot_to_translation: Pose2d) -> "PlanBuilder":
        self._control_frames = self._control_frames.with_translation_frame(robot_to_translation)
        return self

    def aim_frame(self, robot_to_aim: Pose2d) -> "PlanBuilder":
        self._control_frames = self._control_frames.with_aim_frame(robot_to_aim)
        return self

    def tuning(self, tuning: Tuning) -> "PlanBuilder":
        self._tuning = tuning
        return self

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def validation_errors(self) -> List[str]:
        errors: List[str] = []
        has_obs = self._observation_source is not None
        has_pose = self._pose_estimator is not None
        t_target = self._translation_target
        a_target = self._aim_target

        if t_target is None and a_target is None:
            errors.append("plan needs a translation target and/or an aim target")
        if not has_obs and not has_pose:
            errors.append("feedback must configure observation(...) and/or field_pose(...)")

        if has_obs:
            errors.extend(_threshold_errors("observation", self._obs_max_age_sec, self._obs_min_quality))
        if has_pose:
            errors.extend(_threshold_errors("field_pose", self._pose_max_age_sec, self._pose_min_quality))

        if self._gates is not None:
            errors.extend(self._gates.validation_errors())
            if not (has_obs and has_pose):
                errors.append("gates(...) is only used when both observation(...) and field_pose(...) are configured")

        if not has_pose:
            if isinstance(t_target, AbsolutePoint) or isinstance(a_target, AbsolutePoint):
                errors.append("absolute point targets require field_pose(...) feedback")
            if isinstance(a_target, AbsoluteHeading):
                errors.append("absolute heading targets require field_pose(...) feedback")
            if isinstance(t_target, SessionRelativePoint):
                errors.append("session-relative translation targets require field_pose(...) feedback")

        uses_anchor_targets = isinstance(t_target, AnchorRelativePoint) or isinstance(a_target, AnchorRelativePoint)
        if uses_anchor_targets and has_pose and self._anchor_layout is None:
            errors.append("anchor-relative targets with field_pose(...) require an anchor layout")

        if not has_obs and (uses_any_anchor(t_target) or uses_any_anchor(a_target)):
            errors.append("targets on the last observed anchor (ANY_ANCHOR) require observation(...) feedback")

        if self._anchor_layout is not None:
            for target in (t_target, a_target):
                if isinstance(target, AnchorRelativePoint) and not target.uses_any_anchor:
                    if self._anchor_layout.lookup(target.anchor_id) is None:
                        errors.append(f"anchor id {target.anchor_id} is not in the anchor layout")
        return errors

    def build(self) -> GuidancePlan:
        errors = self.validation_errors()
        if errors:
            raise PlanConfigError(errors)

        observation = None
        if self._observation_source is not None:
            observation = ObservationFeedback(self._observation_source, self._obs_max_age_sec, self._obs_min_quality)
        field_pose = None
        if self._pose_estimator is not None:
            field_pose = FieldPoseFeedback(
                self._pose_estimator,
                self._anchor_layout,
                self._pose_max_age_sec,
                self._pose_min_quality,
            )

        feedback = GuidanceFeedback(
            observation=observation,
            field_pose=field_pose,
            gates=self._gates,
            prefer_observation_for_rotation=self._prefer_obs_rotation,
            loss_policy=self._loss_policy,
        )
        return GuidancePlan(
            feedback=feedback,
            translation_target=self._translation_target,
            aim_target=self._aim_target,
            control_frames=self._control_frames,
            tuning=self._tuning,
        )


def _threshold_errors(name: str, max_age_sec: float, min_quality: float) -> List[str]:
    errors = []
    if not math.isfinite(max_age_sec) or max_age_sec < 0.0:
        errors.append(f"{name}(...): max_age_sec must be >= 0")
    if not math.isfinite(min_quality) or not 0.0 <= min_quality <= 1.0:
        errors.append(f"{name}(...): min_quality must be in [0, 1]")
    return errors
