from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Union

from drive_guidance.guidance.arbiter import AdaptiveState
from drive_guidance.guidance.control_laws import rotation_command, translation_command
from drive_guidance.guidance.resolver import resolve_field_point, resolve_translation_point
from drive_guidance.plan import GuidancePlan
from drive_guidance.targets import AbsoluteHeading, AbsolutePoint, AnchorRelativePoint
from drive_guidance.types import ObservationSample, Pose2d, PoseEstimate, VelocityCommand
from drive_guidance.utils.geometry import field_to_robot_xy, is_near_zero, wrap_pi


@dataclass(frozen=True)
class Candidate:
    """Errors and capability flags from one feedback channel for one tick."""

    valid: bool
    can_translate: bool = False
    can_rotate: bool = False
    forward_error: float = 0.0
    left_error: float = 0.0
    rotation_error: float = 0.0
    has_range: bool = False
    range: Optional[float] = None
    command: VelocityCommand = VelocityCommand()

    @staticmethod
    def invalid() -> "Candidate":
        return Candidate(valid=False)

    def to_dict(self) -> dict:
        return {
            "valid": bool(self.valid),
            "can_translate": bool(self.can_translate),
            "can_rotate": bool(self.can_rotate),
            "forward_error": float(self.forward_error),
            "left_error": float(self.left_error),
            "rotation_error": float(self.rotation_error),
            "range": None if self.range is None else float(self.range),
            "command": self.command.to_dict(),
        }


def _anchor_point_usable(target: AnchorRelativePoint, sample: ObservationSample) -> bool:
    # Offsets away from the anchor center are only meaningful with the anchor's orientation.
    orientation_ok = target.is_center or sample.has_orientation
    return bool(target.matches(sample.anchor_id) and sample.has_position and orientation_ok)


def solve_observation(plan: GuidancePlan, sample: Optional[ObservationSample], state: AdaptiveState) -> Candidate:
    cfg = plan.feedback.observation
    if cfg is None or not cfg.accepts(sample):
        return Candidate.invalid()

    if sample.has_anchor_id:
        state.last_anchor_id = int(sample.anchor_id)

    frames = plan.control_frames
    robot_to_anchor = None
    if sample.has_position:
        robot_to_anchor = Pose2d(
            sample.forward,
            sample.left,
            sample.heading if sample.has_orientation else 0.0,
        )
    range_ = sample.range

    forward_err = 0.0
    left_err = 0.0
    rot_err = 0.0
    can_translate = False
    can_rotate = False

    target = plan.translation_target
    if isinstance(target, AnchorRelativePoint) and _anchor_point_usable(target, sample):
        robot_to_target = robot_to_anchor.then(Pose2d(target.forward, target.left, 0.0))
        forward_err = robot_to_target.x - frames.translation.x
        left_err = robot_to_target.y - frames.translation.y
        can_translate = True

    aim = plan.aim_target
    if isinstance(aim, AnchorRelativePoint):
        robot_to_aim = frames.aim
        if _anchor_point_usable(aim, sample):
            robot_to_point = robot_to_anchor.then(Pose2d(aim.forward, aim.left, 0.0))
            aim_to_point = robot_to_aim.inverse().then(robot_to_point)
            rot_err = wrap_pi(math.atan2(aim_to_point.y, aim_to_point.x))
            can_rotate = True
        else:
            # Bearing alone is enough only when aiming at the anchor center from the robot origin.
            aim_at_origin = is_near_zero(robot_to_aim.x) and is_near_zero(robot_to_aim.y)
            if aim.matches(sample.anchor_id) and aim.is_center and aim_at_origin:
                rot_err = wrap_pi(sample.bearing - robot_to_aim.heading)
                can_rotate = True

    return Candidate(
        valid=True,
        can_translate=can_translate,
        can_rotate=can_rotate,
        forward_error=float(forward_err),
        left_error=float(left_err),
        rotation_error=float(rot_err),
        has_range=range_ is not None and math.isfinite(range_),
        range=range_,
    )


def solve_field_pose(plan: GuidancePlan, estimate: Optional[PoseEstimate], state: AdaptiveState) -> Candidate:
    cfg = plan.feedback.field_pose
    if cfg is None or not cfg.accepts(estimate):
        return Candidate.invalid()

    frames = plan.control_frames
    field_to_robot = estimate.pose
    field_to_tframe = field_to_robot.then(frames.translation)
    layout = cfg.anchor_layout

    forward_err = 0.0
    left_err = 0.0
    rot_err = 0.0
    can_translate = False
    can_rotate = False

    if plan.translation_target is not None:
        point = resolve_translation_point(plan.translation_target, field_to_tframe, layout, state)
        if point is not None:
            delta = point.translation - field_to_tframe.translation
            err = field_to_robot_xy(delta, field_to_robot.heading)
            forward_err, left_err = float(err[0]), float(err[1])
            can_translate = True

    aim = plan.aim_target
    if aim is not None:
        field_to_aim = field_to_robot.then(frames.aim)
        if isinstance(aim, AbsoluteHeading):
            rot_err = wrap_pi(aim.heading - field_to_aim.heading)
            can_rotate = True
        elif isinstance(aim, (AbsolutePoint, AnchorRelativePoint)):
            point = resolve_field_point(aim, layout, state)
            if point is not None:
                aim_to_point = field_to_aim.inverse().then(point)
                rot_err = wrap_pi(math.atan2(aim_to_point.y, aim_to_point.x))
                can_rotate = True
        else:
            raise TypeError(f"Unknown aim target kind: {type(aim).__name__}")

    return Candidate(
        valid=True,
        can_translate=can_translate,
        can_rotate=can_rotate,
        forward_error=float(forward_err),
        left_error=float(left_err),
        rotation_error=float(rot_err),
    )


def to_command(plan: GuidancePlan, candidate: Candidate) -> Candidate:
    """Attach the control-law command for a candidate's solvable DOFs."""
    if not candidate.valid:
        return candidate
    forward = 0.0
    lateral = 0.0
    angular = 0.0
    if candidate.can_translate:
        forward, lateral = translation_command(candidate.forward_error, candidate.left_error, plan.tuning)
    if candidate.can_rotate:
        angular = rotation_command(candidate.rotation_error, plan.tuning)
    return replace(candidate, command=VelocityCommand(forward, lateral, angular))


def solve_candidate(
    plan: GuidancePlan,
    sample: Union[ObservationSample, PoseEstimate, None],
    state: AdaptiveState,
) -> Candidate:
    """Solve either feedback channel depending on the sample type, then apply the control laws."""
    if sample is None:
        return Candidate.invalid()
    if isinstance(sample, ObservationSample):
        return to_command(plan, solve_observation(plan, sample, state))
    if isinstance(sample, PoseEstimate):
        return to_command(plan, solve_field_pose(plan, sample, state))
    raise TypeError(f"Unsupported feedback sample: {type(sample).__name__}")
