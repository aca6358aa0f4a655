"""Target specifications for drive guidance plans.

Targets form a closed set of variants. Consumers dispatch on the concrete type
and treat anything else as a programming error:

- `AbsolutePoint`: field-frame point (translation or aim).
- `AnchorRelativePoint`: point in an anchor's frame (translation or aim).
  `anchor_id == ANY_ANCHOR` means "the anchor observed most recently".
- `AbsoluteHeading`: field-frame heading (aim only).
- `SessionRelativePoint`: point relative to the translation frame's field pose
  captured when guidance was last enabled (translation only).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

from drive_guidance.utils.geometry import is_near_zero

ANY_ANCHOR = -1


@dataclass(frozen=True)
class AbsolutePoint:
    x: float
    y: float


@dataclass(frozen=True)
class AnchorRelativePoint:
    anchor_id: int
    forward: float = 0.0
    left: float = 0.0

    def __post_init__(self) -> None:
        anchor_id = int(self.anchor_id)
        object.__setattr__(self, "anchor_id", ANY_ANCHOR if anchor_id < 0 else anchor_id)

    @property
    def uses_any_anchor(self) -> bool:
        return self.anchor_id == ANY_ANCHOR

    @property
    def is_center(self) -> bool:
        return is_near_zero(self.forward) and is_near_zero(self.left)

    def matches(self, observed_id: int | None) -> bool:
        if self.uses_any_anchor:
            return True
        return observed_id is not None and int(observed_id) == self.anchor_id


@dataclass(frozen=True)
class AbsoluteHeading:
    heading: float

    @staticmethod
    def from_degrees(heading_deg: float) -> "AbsoluteHeading":
        return AbsoluteHeading(heading=math.radians(heading_deg))


@dataclass(frozen=True)
class SessionRelativePoint:
    forward: float = 0.0
    left: float = 0.0


TranslationTarget = Union[AbsolutePoint, AnchorRelativePoint, SessionRelativePoint]
AimTarget = Union[AbsolutePoint, AnchorRelativePoint, AbsoluteHeading]

TRANSLATION_TARGET_TYPES = (AbsolutePoint, AnchorRelativePoint, SessionRelativePoint)
AIM_TARGET_TYPES = (AbsolutePoint, AnchorRelativePoint, AbsoluteHeading)


def uses_any_anchor(target: object) -> bool:
    return isinstance(target, AnchorRelativePoint) and target.uses_any_anchor


def target_to_dict(target: object) -> dict | None:
    if target is None:
        return None
    if isinstance(target, AbsolutePoint):
        return {"kind": "absolute_point", "x": target.x, "y": target.y}
    if isinstance(target, AnchorRelativePoint):
        return {
            "kind": "anchor_point",
            "anchor_id": "any" if target.uses_any_anchor else target.anchor_id,
            "forward": target.forward,
            "left": target.left,
        }
    if isinstance(target, AbsoluteHeading):
        return {"kind": "absolute_heading", "heading": target.heading}
    if isinstance(target, SessionRelativePoint):
        return {"kind": "session_point", "forward": target.forward, "left": target.left}
    raise TypeError(f"Unknown target kind: {type(target).__name__}")
