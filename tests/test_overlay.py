import logging
import math

import numpy as np
import pytest

from drive_guidance.builder import PlanBuilder
from drive_guidance.field.anchor_layout import SimpleAnchorLayout
from drive_guidance.offline.simulator import StaticObservationSource, StaticPoseEstimator
from drive_guidance.plan import FieldPoseFeedback, GuidanceFeedback, GuidancePlan
from drive_guidance.targets import ANY_ANCHOR
from drive_guidance.types import (
    GuidanceMode,
    LossPolicy,
    ObservationSample,
    OverrideMask,
    Pose2d,
    PoseEstimate,
    VelocityCommand,
)

DT = 0.05


def _layout() -> SimpleAnchorLayout:
    return SimpleAnchorLayout().add_pose(3, 144.0, 36.0, heading=math.pi)


def _estimator(x, y, heading=0.0) -> StaticPoseEstimator:
    return StaticPoseEstimator(PoseEstimate.of(Pose2d(x, y, heading), quality=1.0, age_sec=0.02))


def _observed(anchor_id, forward, left=0.0, heading=math.pi) -> ObservationSample:
    return ObservationSample.of_pose(anchor_id, forward, left, heading, quality=0.9, age_sec=0.05)


def test_no_requested_dof_outputs_nothing():
    plan = GuidancePlan(feedback=GuidanceFeedback(field_pose=FieldPoseFeedback(_estimator(0.0, 0.0))))
    overlay = plan.overlay()
    overlay.on_enable(DT)
    out = overlay.get(DT)
    assert out.mask.is_none
    assert out.command == VelocityCommand.zero()
    assert overlay.mode == GuidanceMode.NONE


def test_disabled_overlay_outputs_nothing():
    est = _estimator(0.0, 0.0)
    overlay = PlanBuilder().translate_to_point(12.0, 0.0).field_pose(est).build().overlay()
    out = overlay.get(DT)
    assert out.mask.is_none
    assert out.command == VelocityCommand.zero()

    overlay.on_enable(DT)
    assert not overlay.get(DT).mask.is_none
    overlay.on_disable(DT)
    assert overlay.get(DT).mask.is_none
    assert overlay.mode == GuidanceMode.DISABLED


def test_field_pose_only_point():
    est = _estimator(0.0, 0.0)
    overlay = PlanBuilder().translate_to_point(12.0, 0.0).field_pose(est).build().overlay()
    overlay.on_enable(DT)
    out = overlay.get(DT)
    assert out.command.forward == pytest.approx(0.6)
    assert out.command.lateral == pytest.approx(0.0, abs=1e-12)
    assert out.command.angular == 0.0
    assert out.mask == OverrideMask.TRANSLATION_ONLY
    assert overlay.mode == GuidanceMode.FIELD_POSE


def test_observation_only_mode():
    obs = StaticObservationSource(_observed(3, 10.0))
    overlay = PlanBuilder().translate_to_anchor_point(3, forward=6.0).aim_at_anchor_center(3).observation(obs).build().overlay()
    overlay.on_enable(DT)
    out = overlay.get(DT)
    assert overlay.mode == GuidanceMode.OBSERVATION
    assert out.mask == OverrideMask.ALL
    assert out.command.forward == pytest.approx(0.2)
    assert out.command.angular == 0.0
    assert obs.calls == 1


def test_any_anchor_memory_drives_field_pose():
    obs = StaticObservationSource(_observed(3, 44.0))
    est = _estimator(100.0, 36.0)
    plan = (
        PlanBuilder()
        .translate_to_anchor_point(ANY_ANCHOR, forward=12.0)
        .observation(obs)
        .field_pose(est, _layout())
        .build()
    )
    overlay = plan.overlay()
    overlay.on_enable(DT)

    out = overlay.get(DT)
    assert overlay.state.last_anchor_id == 3
    assert out.mask.translation
    assert out.command.forward == pytest.approx(0.6)

    # Camera loses the anchor; the layout still resolves the last one seen.
    obs.sample_value = ObservationSample.none()
    out = overlay.get(DT)
    assert out.mask.translation
    assert out.command.forward == pytest.approx(0.6)
    assert overlay.get_status_dict()["field_pose"]["forward_error"] == pytest.approx(32.0)

    overlay.on_disable(DT)
    overlay.on_enable(DT)
    assert overlay.state.last_anchor_id == 3
    assert overlay.get(DT).mask.translation


def test_any_anchor_before_first_observation():
    obs = StaticObservationSource()
    est = _estimator(100.0, 36.0)
    plan = (
        PlanBuilder()
        .translate_to_anchor_point(ANY_ANCHOR, forward=12.0)
        .observation(obs)
        .field_pose(est, _layout())
        .build()
    )
    overlay = plan.overlay()
    overlay.on_enable(DT)
    out = overlay.get(DT)
    assert out.mask.is_none
    assert out.command == VelocityCommand.zero()


def test_session_point_captured_on_enable():
    est = _estimator(5.0, 5.0, math.pi / 2)
    overlay = PlanBuilder().translate_to_session_point(6.0).field_pose(est).build().overlay()
    overlay.on_enable(DT)

    out = overlay.get(DT)
    anchor = overlay.state.session_anchor
    assert (anchor.x, anchor.y) == pytest.approx((5.0, 5.0))
    np.testing.assert_allclose([out.command.forward, out.command.lateral], [0.3, 0.0], atol=1e-12)

    est.set_pose(5.0, 8.0, math.pi / 2)
    out = overlay.get(DT)
    np.testing.assert_allclose([out.command.forward, out.command.lateral], [0.15, 0.0], atol=1e-12)

    est.set_pose(7.0, 8.0, math.pi / 2)
    out = overlay.get(DT)
    np.testing.assert_allclose([out.command.forward, out.command.lateral], [0.15, 0.1], atol=1e-12)

    overlay.on_disable(DT)
    overlay.on_enable(DT)
    out = overlay.get(DT)
    assert overlay.state.session_anchor.x == pytest.approx(7.0)
    np.testing.assert_allclose([out.command.forward, out.command.lateral], [0.3, 0.0], atol=1e-12)


@pytest.mark.parametrize(
    "policy,expected_mask",
    [(LossPolicy.PASS_THROUGH, OverrideMask.NONE), (LossPolicy.ZERO_OUTPUT, OverrideMask.ALL)],
)
def test_loss_policy_without_feedback(policy, expected_mask):
    obs = StaticObservationSource()
    overlay = (
        PlanBuilder()
        .translate_to_anchor_point(3, forward=6.0)
        .aim_at_anchor_center(3)
        .observation(obs)
        .loss_policy(policy)
        .build()
        .overlay()
    )
    overlay.on_enable(DT)
    out = overlay.get(DT)
    assert out.mask == expected_mask
    assert out.command == VelocityCommand(0.0, 0.0, 0.0)


@pytest.mark.parametrize(
    "policy,expected_mask",
    [(LossPolicy.PASS_THROUGH, OverrideMask.TRANSLATION_ONLY), (LossPolicy.ZERO_OUTPUT, OverrideMask.ALL)],
)
def test_loss_policy_is_per_dof(policy, expected_mask):
    obs = StaticObservationSource()
    est = _estimator(0.0, 0.0)
    overlay = (
        PlanBuilder()
        .translate_to_point(12.0, 0.0)
        .aim_at_anchor_center(ANY_ANCHOR)
        .observation(obs)
        .field_pose(est, _layout())
        .loss_policy(policy)
        .build()
        .overlay()
    )
    overlay.on_enable(DT)
    out = overlay.get(DT)
    assert out.mask == expected_mask
    assert out.command.forward == pytest.approx(0.6)
    assert out.command.angular == 0.0


def test_handoff_is_continuous():
    # Observation and field pose disagree slightly on the lateral error.
    obs = StaticObservationSource(_observed(3, 10.0, left=1.0))
    est = _estimator(134.0, 36.0)
    overlay = (
        PlanBuilder()
        .translate_to_anchor_point(3, forward=6.0)
        .observation(obs)
        .field_pose(est, _layout())
        .gates(9.0, 12.0, blend_sec=0.15)
        .build()
        .overlay()
    )
    overlay.on_enable(DT)

    out = overlay.get(DT)
    assert not overlay.state.obs_in_range
    assert out.command.forward == pytest.approx(0.2)
    assert out.command.lateral == pytest.approx(0.0, abs=1e-9)

    # Range drops inside the enter gate: observation takes over translation.
    obs.sample_value = _observed(3, 8.0, left=1.0)
    field_cmd = np.array([0.2, 0.0])
    obs_cmd = np.array([0.1, 0.05])
    step = DT / 0.15

    prev = np.array([out.command.forward, out.command.lateral])
    lateral = []
    for k in range(1, 5):
        out = overlay.get(DT)
        cur = np.array([out.command.forward, out.command.lateral])
        assert np.linalg.norm(cur - prev) <= step * np.linalg.norm(obs_cmd - field_cmd) + 1e-9
        if k < 3:
            np.testing.assert_allclose(cur, field_cmd + (obs_cmd - field_cmd) * step * k, atol=1e-9)
        lateral.append(out.command.lateral)
        prev = cur

    assert overlay.state.obs_in_range
    assert overlay.state.blend_translation == 1.0
    assert all(b >= a for a, b in zip(lateral, lateral[1:]))
    np.testing.assert_allclose(prev, obs_cmd, atol=1e-9)


def test_enable_resets_blend_but_not_anchor_memory():
    obs = StaticObservationSource(_observed(3, 8.0))
    est = _estimator(136.0, 36.0)
    overlay = (
        PlanBuilder()
        .translate_to_anchor_point(ANY_ANCHOR, forward=6.0)
        .observation(obs)
        .field_pose(est, _layout())
        .gates(9.0, 12.0, blend_sec=0.0)
        .build()
        .overlay()
    )
    overlay.on_enable(DT)
    overlay.get(DT)
    assert overlay.state.obs_in_range
    assert overlay.state.blend_translation == 1.0

    overlay.on_disable(DT)
    overlay.on_enable(DT)
    assert not overlay.state.obs_in_range
    assert overlay.state.blend_translation == 0.0
    assert overlay.state.last_anchor_id == 3


def test_status_dict():
    est = _estimator(0.0, 0.0)
    overlay = PlanBuilder().translate_to_point(12.0, 0.0).field_pose(est).build().overlay()
    overlay.on_enable(DT)
    overlay.get(DT)
    status = overlay.get_status_dict()
    for key in (
        "enabled",
        "mode",
        "command",
        "mask",
        "obs_in_range",
        "blend_translation",
        "blend_rotation",
        "last_anchor_id",
        "session_anchor",
        "observation",
        "field_pose",
    ):
        assert key in status
    assert status["mode"] == "field_pose"
    assert status["session_anchor"] == "none"
    assert status["last_anchor_id"] == ANY_ANCHOR
    assert status["tick_count"] == 1


def test_loss_is_logged_once_per_transition(caplog):
    caplog.set_level(logging.DEBUG, logger="drive_guidance.guidance.overlay")
    obs = StaticObservationSource()
    overlay = (
        PlanBuilder()
        .translate_to_anchor_point(3, forward=6.0)
        .observation(obs)
        .build()
        .overlay()
    )
    overlay.on_enable(DT)
    for _ in range(5):
        overlay.get(DT)
    assert overlay.get_status_dict()["in_loss"]

    obs.sample_value = _observed(3, 20.0)
    overlay.get(DT)
    assert not overlay.get_status_dict()["in_loss"]

    messages = [r.getMessage() for r in caplog.records]
    assert sum(m.startswith("No feedback") for m in messages) == 1
    assert sum(m.startswith("Feedback restored") for m in messages) == 1
