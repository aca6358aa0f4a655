from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from drive_guidance.guidance.arbiter import AdaptiveState, ArbitrationResult, arbitrate
from drive_guidance.guidance.loss_policy import apply_loss_policy, is_loss
from drive_guidance.guidance.solvers import Candidate, solve_candidate
from drive_guidance.plan import GuidancePlan
from drive_guidance.types import GuidanceMode, OverlayOutput, OverrideMask

logger = logging.getLogger(__name__)


class GuidanceOverlay:
    """
    Per-tick guidance step for one `GuidancePlan`.

    Call `on_enable(dt)` when the driver engages guidance, `get(dt)` once per
    control-loop tick while enabled, and `on_disable(dt)` when it is released.
    The output mask tells the caller which DOFs of its own command to replace.
    """

    def __init__(self, plan: GuidancePlan) -> None:
        self.plan = plan
        self.state = AdaptiveState()
        self._enabled = False
        self._mode = GuidanceMode.DISABLED
        self._last_output = OverlayOutput.zero()
        self._last_obs: Candidate = Candidate.invalid()
        self._last_field: Candidate = Candidate.invalid()
        self._last_arbitration: Optional[ArbitrationResult] = None
        self._tick_count = 0
        self._in_loss = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def mode(self) -> GuidanceMode:
        return self._mode

    @property
    def last_output(self) -> OverlayOutput:
        return self._last_output

    def on_enable(self, dt: float = 0.0) -> None:
        self.state.reset_for_enable()
        self._enabled = True
        self._mode = GuidanceMode.ENABLED
        self._tick_count = 0
        self._in_loss = False
        logger.info("Guidance enabled (last_anchor_id=%d)", self.state.last_anchor_id)

    def on_disable(self, dt: float = 0.0) -> None:
        # State is frozen as-is; the next enable clears the instantaneous parts.
        self._enabled = False
        self._mode = GuidanceMode.DISABLED
        logger.info("Guidance disabled after %d ticks", self._tick_count)

    def get(self, dt: float) -> OverlayOutput:
        if not self._enabled:
            self._last_output = OverlayOutput.zero()
            return self._last_output

        self._tick_count += 1
        plan = self.plan
        fb = plan.feedback
        requested = plan.requested_mask()
        if requested.is_none:
            self._mode = GuidanceMode.NONE
            self._last_output = OverlayOutput.zero()
            return self._last_output

        # Observation first so the last-seen anchor id is current for the field-pose solve.
        obs = Candidate.invalid()
        if fb.observation is not None:
            obs = solve_candidate(plan, fb.observation.source.sample(dt), self.state)
        field = Candidate.invalid()
        if fb.field_pose is not None:
            field = solve_candidate(plan, fb.field_pose.pose_estimator.get_estimate(), self.state)
        self._last_obs = obs
        self._last_field = field

        if not fb.is_adaptive:
            chosen = obs if fb.has_observation else field
            self._mode = GuidanceMode.OBSERVATION if fb.has_observation else GuidanceMode.FIELD_POSE
            mask = OverrideMask(
                translation=chosen.valid and chosen.can_translate,
                rotation=chosen.valid and chosen.can_rotate,
            ).intersect(requested)
            out = apply_loss_policy(chosen.command, mask, requested, fb.loss_policy)
        else:
            self._mode = GuidanceMode.ADAPTIVE
            result = arbitrate(
                obs,
                field,
                requested,
                fb.gates,
                fb.prefer_observation_for_rotation,
                self.state,
                dt,
            )
            self._log_selection_change(result)
            self._last_arbitration = result
            mask = result.mask
            out = apply_loss_policy(result.command, mask, requested, fb.loss_policy)

        self._log_loss_change(is_loss(mask, requested), requested, mask)
        self._last_output = out
        return out

    def _log_loss_change(self, in_loss: bool, requested: OverrideMask, mask: OverrideMask) -> None:
        if in_loss == self._in_loss:
            return
        self._in_loss = in_loss
        if in_loss:
            logger.debug(
                "No feedback for requested DOFs (requested=%s, available=%s, policy=%s)",
                requested.to_dict(),
                mask.to_dict(),
                self.plan.feedback.loss_policy.value,
            )
        else:
            logger.debug("Feedback restored for requested DOFs")

    def _log_selection_change(self, result: ArbitrationResult) -> None:
        prev = self._last_arbitration
        if prev is None:
            return
        if prev.choose_obs_translation != result.choose_obs_translation:
            logger.debug(
                "Translation source -> %s (obs_in_range=%s)",
                "observation" if result.choose_obs_translation else "field_pose",
                self.state.obs_in_range,
            )
        if prev.choose_obs_rotation != result.choose_obs_rotation:
            logger.debug(
                "Rotation source -> %s",
                "observation" if result.choose_obs_rotation else "field_pose",
            )

    def get_status_dict(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "enabled": self._enabled,
            "mode": self._mode.value,
            "command": self._last_output.command.to_dict(),
            "mask": self._last_output.mask.to_dict(),
            "tick_count": self._tick_count,
            "in_loss": self._in_loss,
            "observation": self._last_obs.to_dict(),
            "field_pose": self._last_field.to_dict(),
        }
        status.update(self.state.to_dict())
        return status
