from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np

from drive_guidance.utils.geometry import wrap_pi


class LossPolicy(Enum):
    PASS_THROUGH = "pass_through"
    ZERO_OUTPUT = "zero_output"


class GuidanceMode(Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"
    NONE = "none"
    OBSERVATION = "observation"
    FIELD_POSE = "field_pose"
    ADAPTIVE = "adaptive"


@dataclass(frozen=True)
class Pose2d:
    """
    Planar pose / rigid transform.

    Convention: +x forward, +y left, heading CCW-positive (rad).
    A pose `a_to_b` maps coordinates expressed in frame b into frame a.
    """

    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        object.__setattr__(self, "heading", float(self.heading))

    @staticmethod
    def zero() -> "Pose2d":
        return Pose2d(0.0, 0.0, 0.0)

    @property
    def translation(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    @property
    def norm(self) -> float:
        return float(math.hypot(self.x, self.y))

    def then(self, other: "Pose2d") -> "Pose2d":
        """Compose `self` (a->b) with `other` (b->c), giving a->c."""
        c = math.cos(self.heading)
        s = math.sin(self.heading)
        return Pose2d(
            x=self.x + c * other.x - s * other.y,
            y=self.y + s * other.x + c * other.y,
            heading=wrap_pi(self.heading + other.heading),
        )

    def inverse(self) -> "Pose2d":
        c = math.cos(self.heading)
        s = math.sin(self.heading)
        return Pose2d(
            x=-(c * self.x + s * self.y),
            y=-(-s * self.x + c * self.y),
            heading=wrap_pi(-self.heading),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "heading": self.heading}


@dataclass(frozen=True)
class AnchorPose:
    """Field-frame pose of a numbered landmark."""

    anchor_id: int
    pose: Pose2d
    z: float = 0.0

    def __post_init__(self) -> None:
        if int(self.anchor_id) < 0:
            raise ValueError(f"anchor_id must be non-negative, got {self.anchor_id}")
        object.__setattr__(self, "anchor_id", int(self.anchor_id))


@dataclass(frozen=True)
class ObservationSample:
    """
    Robot-relative observation of an anchor.

    Optional readings are None when the sensing pipeline did not provide them.
    `bearing` is always present (rad, CCW-positive from robot +x).
    """

    has_target: bool
    age_sec: float
    quality: float
    bearing: float = 0.0
    forward: Optional[float] = None
    left: Optional[float] = None
    heading: Optional[float] = None
    anchor_id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quality", float(np.clip(self.quality, 0.0, 1.0)))
        # NaN stays NaN so it never passes an age gate.
        age = float(self.age_sec)
        object.__setattr__(self, "age_sec", age if math.isnan(age) else max(0.0, age))

    @staticmethod
    def none() -> "ObservationSample":
        return ObservationSample(has_target=False, age_sec=float("inf"), quality=0.0)

    @staticmethod
    def of_position(
        forward: float,
        left: float,
        quality: float,
        age_sec: float,
        anchor_id: Optional[int] = None,
    ) -> "ObservationSample":
        return ObservationSample(
            has_target=True,
            age_sec=age_sec,
            quality=quality,
            bearing=float(math.atan2(left, forward)),
            forward=float(forward),
            left=float(left),
            anchor_id=anchor_id,
        )

    @staticmethod
    def of_pose(
        anchor_id: Optional[int],
        forward: float,
        left: float,
        heading: float,
        quality: float,
        age_sec: float,
    ) -> "ObservationSample":
        return ObservationSample(
            has_target=True,
            age_sec=age_sec,
            quality=quality,
            bearing=float(math.atan2(left, forward)),
            forward=float(forward),
            left=float(left),
            heading=float(heading),
            anchor_id=anchor_id,
        )

    @staticmethod
    def of_bearing(
        bearing: float,
        quality: float,
        age_sec: float,
        anchor_id: Optional[int] = None,
    ) -> "ObservationSample":
        return ObservationSample(
            has_target=True,
            age_sec=age_sec,
            quality=quality,
            bearing=float(bearing),
            anchor_id=anchor_id,
        )

    @property
    def has_position(self) -> bool:
        return bool(
            self.has_target
            and self.forward is not None
            and self.left is not None
            and math.isfinite(self.forward)
            and math.isfinite(self.left)
        )

    @property
    def has_orientation(self) -> bool:
        return bool(self.has_target and self.heading is not None and math.isfinite(self.heading))

    @property
    def has_anchor_id(self) -> bool:
        return bool(self.has_target and self.anchor_id is not None and self.anchor_id >= 0)

    @property
    def range(self) -> Optional[float]:
        if not self.has_position:
            return None
        return float(math.hypot(self.forward, self.left))


@dataclass(frozen=True)
class PoseEstimate:
    has_pose: bool
    age_sec: float
    quality: float
    pose: Pose2d = Pose2d()

    @staticmethod
    def no_pose() -> "PoseEstimate":
        return PoseEstimate(has_pose=False, age_sec=0.0, quality=0.0, pose=Pose2d.zero())

    @staticmethod
    def of(pose: Pose2d, quality: float = 1.0, age_sec: float = 0.0) -> "PoseEstimate":
        return PoseEstimate(has_pose=True, age_sec=float(age_sec), quality=float(quality), pose=pose)


@dataclass(frozen=True)
class VelocityCommand:
    """Frame-level command: forward/lateral translation and CCW angular rate."""

    forward: float = 0.0
    lateral: float = 0.0
    angular: float = 0.0

    @staticmethod
    def zero() -> "VelocityCommand":
        return VelocityCommand(0.0, 0.0, 0.0)

    def to_dict(self) -> Dict[str, float]:
        return {"forward": float(self.forward), "lateral": float(self.lateral), "angular": float(self.angular)}


@dataclass(frozen=True)
class OverrideMask:
    translation: bool = False
    rotation: bool = False

    def with_translation(self, enabled: bool) -> "OverrideMask":
        return OverrideMask(translation=bool(enabled), rotation=self.rotation)

    def with_rotation(self, enabled: bool) -> "OverrideMask":
        return OverrideMask(translation=self.translation, rotation=bool(enabled))

    def intersect(self, other: "OverrideMask | None") -> "OverrideMask":
        if other is None:
            return self
        return OverrideMask(self.translation and other.translation, self.rotation and other.rotation)

    def union(self, other: "OverrideMask | None") -> "OverrideMask":
        if other is None:
            return self
        return OverrideMask(self.translation or other.translation, self.rotation or other.rotation)

    @property
    def is_none(self) -> bool:
        return not (self.translation or self.rotation)

    def to_dict(self) -> Dict[str, bool]:
        return {"translation": bool(self.translation), "rotation": bool(self.rotation)}


OverrideMask.NONE = OverrideMask(False, False)  # type: ignore[attr-defined]
OverrideMask.TRANSLATION_ONLY = OverrideMask(True, False)  # type: ignore[attr-defined]
OverrideMask.ROTATION_ONLY = OverrideMask(False, True)  # type: ignore[attr-defined]
OverrideMask.ALL = OverrideMask(True, True)  # type: ignore[attr-defined]


@dataclass(frozen=True)
class OverlayOutput:
    command: VelocityCommand
    mask: OverrideMask

    @staticmethod
    def zero() -> "OverlayOutput":
        return OverlayOutput(VelocityCommand.zero(), OverrideMask.NONE)

    def to_dict(self) -> Dict[str, Any]:
        return {"command": self.command.to_dict(), "mask": self.mask.to_dict()}
