from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol

from drive_guidance.field.anchor_layout import AnchorLayout
from drive_guidance.targets import (
    AIM_TARGET_TYPES,
    TRANSLATION_TARGET_TYPES,
    AimTarget,
    TranslationTarget,
    target_to_dict,
)
from drive_guidance.types import LossPolicy, ObservationSample, OverrideMask, Pose2d, PoseEstimate

if TYPE_CHECKING:
    from drive_guidance.guidance.overlay import GuidanceOverlay


class PlanConfigError(ValueError):
    """Raised when a guidance plan cannot be built from its configuration."""

    def __init__(self, errors: List[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        lines = "\n".join(f" - {e}" for e in self.errors)
        super().__init__(f"Invalid guidance plan:\n{lines}")


class ObservationSource(Protocol):
    def sample(self, dt: float) -> Optional[ObservationSample]:  # noqa: D102
        ...


class PoseEstimator(Protocol):
    def get_estimate(self) -> Optional[PoseEstimate]:  # noqa: D102
        ...


@dataclass(frozen=True)
class Tuning:
    kp_translate: float = 0.05
    max_translate_cmd: float = 0.60
    kp_aim: float = 2.50
    max_rotate_cmd: float = 0.80
    aim_deadband_rad: float = math.radians(1.0)

    def __post_init__(self) -> None:
        bad = [name for name, v in self.to_dict().items() if not math.isfinite(v) or v < 0.0]
        if bad:
            raise PlanConfigError([f"tuning.{name} must be a finite value >= 0" for name in bad])

    @staticmethod
    def defaults() -> "Tuning":
        return Tuning()

    def to_dict(self) -> Dict[str, float]:
        return {
            "kp_translate": float(self.kp_translate),
            "max_translate_cmd": float(self.max_translate_cmd),
            "kp_aim": float(self.kp_aim),
            "max_rotate_cmd": float(self.max_rotate_cmd),
            "aim_deadband_rad": float(self.aim_deadband_rad),
        }


@dataclass(frozen=True)
class ControlFrames:
    """
    Robot -> frame offsets of the controlled points.

    translation: the point moved onto the translation target.
    aim: the frame whose +x axis is rotated onto the aim target.
    """

    translation: Pose2d = Pose2d()
    aim: Pose2d = Pose2d()

    @staticmethod
    def robot_center() -> "ControlFrames":
        return ControlFrames()

    def with_translation_frame(self, robot_to_translation: Pose2d) -> "ControlFrames":
        return ControlFrames(translation=robot_to_translation, aim=self.aim)

    def with_aim_frame(self, robot_to_aim: Pose2d) -> "ControlFrames":
        return ControlFrames(translation=self.translation, aim=robot_to_aim)

    def to_dict(self) -> Dict[str, Any]:
        return {"translation": self.translation.to_dict(), "aim": self.aim.to_dict()}


@dataclass(frozen=True)
class ObservationFeedback:
    DEFAULT_MAX_AGE_SEC = 0.50
    DEFAULT_MIN_QUALITY = 0.10

    source: ObservationSource
    max_age_sec: float = DEFAULT_MAX_AGE_SEC
    min_quality: float = DEFAULT_MIN_QUALITY

    def accepts(self, sample: Optional[ObservationSample]) -> bool:
        return bool(
            sample is not None
            and sample.has_target
            and sample.age_sec <= self.max_age_sec
            and sample.quality >= self.min_quality
        )


@dataclass(frozen=True)
class FieldPoseFeedback:
    DEFAULT_MAX_AGE_SEC = 0.50
    DEFAULT_MIN_QUALITY = 0.10

    pose_estimator: PoseEstimator
    anchor_layout: Optional[AnchorLayout] = None
    max_age_sec: float = DEFAULT_MAX_AGE_SEC
    min_quality: float = DEFAULT_MIN_QUALITY

    def accepts(self, estimate: Optional[PoseEstimate]) -> bool:
        return bool(
            estimate is not None
            and estimate.has_pose
            and estimate.age_sec <= self.max_age_sec
            and estimate.quality >= self.min_quality
        )


@dataclass(frozen=True)
class Gates:
    """Adaptive-mode source selection gates (hysteresis band + takeover blend)."""

    enter_range: float = 9.0
    exit_range: float = 12.0
    blend_sec: float = 0.15

    @staticmethod
    def defaults() -> "Gates":
        return Gates()

    def validation_errors(self) -> List[str]:
        errors = []
        if not math.isfinite(self.enter_range) or self.enter_range < 0.0:
            errors.append("gates.enter_range must be >= 0")
        if not math.isfinite(self.exit_range) or self.exit_range < 0.0:
            errors.append("gates.exit_range must be >= 0")
        if not math.isfinite(self.blend_sec) or self.blend_sec < 0.0:
            errors.append("gates.blend_sec must be >= 0")
        if math.isfinite(self.enter_range) and math.isfinite(self.exit_range) and not self.enter_range < self.exit_range:
            errors.append("gates.enter_range must be < gates.exit_range")
        return errors

    def to_dict(self) -> Dict[str, float]:
        return {"enter_range": self.enter_range, "exit_range": self.exit_range, "blend_sec": self.blend_sec}


@dataclass(frozen=True)
class GuidanceFeedback:
    observation: Optional[ObservationFeedback] = None
    field_pose: Optional[FieldPoseFeedback] = None
    gates: Optional[Gates] = None
    prefer_observation_for_rotation: bool = True
    loss_policy: LossPolicy = LossPolicy.PASS_THROUGH

    def __post_init__(self) -> None:
        if self.observation is None and self.field_pose is None:
            raise PlanConfigError("feedback requires observation and/or field_pose")
        if self.is_adaptive:
            gates = self.gates or Gates.defaults()
            errors = gates.validation_errors()
            if errors:
                raise PlanConfigError(errors)
            object.__setattr__(self, "gates", gates)
        if self.loss_policy is None:
            object.__setattr__(self, "loss_policy", LossPolicy.PASS_THROUGH)

    @property
    def has_observation(self) -> bool:
        return self.observation is not None

    @property
    def has_field_pose(self) -> bool:
        return self.field_pose is not None

    @property
    def is_adaptive(self) -> bool:
        return self.has_observation and self.has_field_pose

    @property
    def anchor_layout(self) -> Optional[AnchorLayout]:
        return self.field_pose.anchor_layout if self.field_pose is not None else None


@dataclass(frozen=True)
class GuidancePlan:
    """Immutable description of what guidance should align to and how."""

    feedback: GuidanceFeedback
    translation_target: Optional[TranslationTarget] = None
    aim_target: Optional[AimTarget] = None
    control_frames: ControlFrames = field(default_factory=ControlFrames.robot_center)
    tuning: Tuning = field(default_factory=Tuning.defaults)

    def __post_init__(self) -> None:
        if self.translation_target is not None and not isinstance(self.translation_target, TRANSLATION_TARGET_TYPES):
            raise TypeError(f"Unsupported translation target: {type(self.translation_target).__name__}")
        if self.aim_target is not None and not isinstance(self.aim_target, AIM_TARGET_TYPES):
            raise TypeError(f"Unsupported aim target: {type(self.aim_target).__name__}")

    def requested_mask(self) -> OverrideMask:
        return OverrideMask(
            translation=self.translation_target is not None,
            rotation=self.aim_target is not None,
        )

    def overlay(self) -> "GuidanceOverlay":
        from drive_guidance.guidance.overlay import GuidanceOverlay

        return GuidanceOverlay(self)

    def to_dict(self) -> Dict[str, Any]:
        fb = self.feedback
        return {
            "translation_target": target_to_dict(self.translation_target),
            "aim_target": target_to_dict(self.aim_target),
            "control_frames": self.control_frames.to_dict(),
            "tuning": self.tuning.to_dict(),
            "feedback": {
                "observation": None
                if fb.observation is None
                else {"max_age_sec": fb.observation.max_age_sec, "min_quality": fb.observation.min_quality},
                "field_pose": None
                if fb.field_pose is None
                else {
                    "max_age_sec": fb.field_pose.max_age_sec,
                    "min_quality": fb.field_pose.min_quality,
                    "has_anchor_layout": fb.field_pose.anchor_layout is not None,
                },
                "gates": None if fb.gates is None else fb.gates.to_dict(),
                "prefer_observation_for_rotation": bool(fb.prefer_observation_for_rotation),
                "loss_policy": fb.loss_policy.value,
            },
        }

