from __future__ import annotations

from typing import Optional

from drive_guidance.field.anchor_layout import AnchorLayout
from drive_guidance.guidance.arbiter import AdaptiveState
from drive_guidance.targets import (
    ANY_ANCHOR,
    AbsoluteHeading,
    AbsolutePoint,
    AnchorRelativePoint,
    SessionRelativePoint,
)
from drive_guidance.types import Pose2d


def resolve_anchor_id(anchor_id: int, state: AdaptiveState) -> Optional[int]:
    if anchor_id != ANY_ANCHOR:
        return int(anchor_id)
    if state.has_last_anchor:
        return int(state.last_anchor_id)
    return None


def resolve_field_point(target, layout: Optional[AnchorLayout], state: AdaptiveState) -> Optional[Pose2d]:
    """
    Field-frame point (heading 0) for a point target, or None when unresolvable.

    Anchor-relative targets need a layout entry for the fixed id, or for the
    last observed anchor when the target uses ANY_ANCHOR.
    """
    if target is None:
        return None
    if isinstance(target, AbsolutePoint):
        return Pose2d(target.x, target.y, 0.0)
    if isinstance(target, AnchorRelativePoint):
        if layout is None:
            return None
        anchor_id = resolve_anchor_id(target.anchor_id, state)
        if anchor_id is None:
            return None
        anchor = layout.lookup(anchor_id)
        if anchor is None:
            return None
        return anchor.pose.then(Pose2d(target.forward, target.left, 0.0))
    if isinstance(target, (AbsoluteHeading, SessionRelativePoint)):
        # Not points in the field frame on their own.
        return None
    raise TypeError(f"Unknown target kind: {type(target).__name__}")


def resolve_session_point(
    target: SessionRelativePoint,
    field_to_translation_frame: Pose2d,
    state: AdaptiveState,
) -> Pose2d:
    # The anchor is captured on the first call after enable and held until the next enable.
    if state.session_anchor is None:
        state.session_anchor = field_to_translation_frame
    return state.session_anchor.then(Pose2d(target.forward, target.left, 0.0))


def resolve_translation_point(
    target,
    field_to_translation_frame: Pose2d,
    layout: Optional[AnchorLayout],
    state: AdaptiveState,
) -> Optional[Pose2d]:
    if isinstance(target, SessionRelativePoint):
        return resolve_session_point(target, field_to_translation_frame, state)
    return resolve_field_point(target, layout, state)
