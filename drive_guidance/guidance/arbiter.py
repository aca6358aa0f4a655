"""Per-DOF source arbitration for adaptive guidance.

Translation prefers observation only while the observed range is inside the
hysteresis band (enter below `enter_range`, leave above `exit_range`).
Rotation follows `prefer_observation_for_rotation`, otherwise the translation
choice. A blend fraction per DOF (0 = field pose, 1 = observation) ramps
toward the chosen source at `dt / blend_sec` per tick.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from drive_guidance.plan import Gates
from drive_guidance.targets import ANY_ANCHOR
from drive_guidance.types import OverrideMask, Pose2d, VelocityCommand
from drive_guidance.utils.geometry import clamp, lerp

_SNAP_EPS = 1e-9


@dataclass
class AdaptiveState:
    """Mutable state carried by one guidance overlay across ticks."""

    obs_in_range: bool = False
    blend_translation: float = 0.0
    blend_rotation: float = 0.0
    last_anchor_id: int = ANY_ANCHOR
    session_anchor: Optional[Pose2d] = None

    def reset_for_enable(self) -> None:
        # last_anchor_id is kept so "any anchor" targets survive a re-enable.
        self.obs_in_range = False
        self.blend_translation = 0.0
        self.blend_rotation = 0.0
        self.session_anchor = None

    @property
    def has_last_anchor(self) -> bool:
        return self.last_anchor_id >= 0

    def to_dict(self) -> dict:
        return {
            "obs_in_range": bool(self.obs_in_range),
            "blend_translation": float(self.blend_translation),
            "blend_rotation": float(self.blend_rotation),
            "last_anchor_id": int(self.last_anchor_id),
            "session_anchor": "none" if self.session_anchor is None else self.session_anchor.to_dict(),
        }


@dataclass(frozen=True)
class ArbitrationResult:
    command: VelocityCommand
    mask: OverrideMask
    choose_obs_translation: bool
    choose_obs_rotation: bool
    has_obs_translation: bool
    has_field_translation: bool
    has_obs_rotation: bool
    has_field_rotation: bool


def update_range_hysteresis(in_range: bool, has_obs_translation: bool, range_: float, gates: Gates) -> bool:
    if not has_obs_translation:
        return False
    if not in_range:
        return bool(range_ <= float(gates.enter_range))
    return not bool(range_ >= float(gates.exit_range))


def select_translation_source(want: bool, has_obs: bool, has_field: bool, obs_in_range: bool) -> bool:
    """True selects observation, False selects field pose."""
    if not want:
        return False
    if has_obs and not has_field:
        return True
    if has_obs and has_field:
        return bool(obs_in_range)
    return False


def select_rotation_source(
    want: bool,
    has_obs: bool,
    has_field: bool,
    prefer_observation: bool,
    translation_choice: bool,
) -> bool:
    if not want:
        return False
    if has_obs and not has_field:
        return True
    if prefer_observation:
        return bool(has_obs)
    if has_obs and has_field:
        return bool(translation_choice)
    return False


def blend_step(dt: float, blend_sec: float) -> float:
    blend_sec = max(0.0, float(blend_sec))
    if blend_sec <= 0.0:
        return 1.0
    return clamp(float(dt) / blend_sec, 0.0, 1.0)


def advance_blend(current: float, choose_obs: bool, step: float) -> float:
    if choose_obs:
        t = min(1.0, float(current) + step)
        return 1.0 if t >= 1.0 - _SNAP_EPS else t
    t = max(0.0, float(current) - step)
    return 0.0 if t <= _SNAP_EPS else t


def arbitrate(
    obs,
    field,
    requested: OverrideMask,
    gates: Gates,
    prefer_observation_for_rotation: bool,
    state: AdaptiveState,
    dt: float,
) -> ArbitrationResult:
    """
    Pick and blend per-DOF commands from two solved candidates.

    Args:
        obs, field: `Candidate` results for the observation and field-pose channels.
        requested: DOFs the plan wants to override.
        gates: hysteresis band and blend time.
        prefer_observation_for_rotation: rotation follows observation whenever it can.
        state: updated in place (hysteresis flag and blend fractions).
        dt: tick duration in seconds.

    Returns:
        ArbitrationResult whose mask has a bit set only for DOFs with a contributor.
    """
    want_t = bool(requested.translation)
    want_r = bool(requested.rotation)

    has_obs_t = bool(obs.valid and obs.can_translate and obs.has_range)
    has_field_t = bool(field.valid and field.can_translate)
    has_obs_r = bool(obs.valid and obs.can_rotate)
    has_field_r = bool(field.valid and field.can_rotate)

    obs_range = float(obs.range) if obs.range is not None else float("nan")
    state.obs_in_range = update_range_hysteresis(state.obs_in_range, has_obs_t, obs_range, gates)

    choose_t = select_translation_source(want_t, has_obs_t, has_field_t, state.obs_in_range)
    choose_r = select_rotation_source(want_r, has_obs_r, has_field_r, prefer_observation_for_rotation, choose_t)

    step = blend_step(dt, gates.blend_sec)
    state.blend_translation = advance_blend(state.blend_translation, choose_t, step)
    state.blend_rotation = advance_blend(state.blend_rotation, choose_r, step)

    forward = 0.0
    lateral = 0.0
    angular = 0.0
    mask = OverrideMask.NONE

    if want_t:
        if has_obs_t and has_field_t:
            forward = lerp(field.command.forward, obs.command.forward, state.blend_translation)
            lateral = lerp(field.command.lateral, obs.command.lateral, state.blend_translation)
            mask = mask.with_translation(True)
        elif has_obs_t:
            forward, lateral = obs.command.forward, obs.command.lateral
            mask = mask.with_translation(True)
        elif has_field_t:
            forward, lateral = field.command.forward, field.command.lateral
            mask = mask.with_translation(True)

    if want_r:
        if has_obs_r and has_field_r:
            angular = lerp(field.command.angular, obs.command.angular, state.blend_rotation)
            mask = mask.with_rotation(True)
        elif has_obs_r:
            angular = obs.command.angular
            mask = mask.with_rotation(True)
        elif has_field_r:
            angular = field.command.angular
            mask = mask.with_rotation(True)

    return ArbitrationResult(
        command=VelocityCommand(forward, lateral, angular),
        mask=mask,
        choose_obs_translation=choose_t,
        choose_obs_rotation=choose_r,
        has_obs_translation=has_obs_t,
        has_field_translation=has_field_t,
        has_obs_rotation=has_obs_r,
        has_field_rotation=has_field_r,
    )
