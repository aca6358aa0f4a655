import math

import pytest

from drive_guidance.config import PlanConfig
from drive_guidance.field.anchor_layout import SimpleAnchorLayout
from drive_guidance.offline.simulator import CameraConfig, LocalizerConfig, Scenario, simulate_guidance
from drive_guidance.plan import Gates
from drive_guidance.targets import ANY_ANCHOR, AbsoluteHeading, AbsolutePoint, AnchorRelativePoint, SessionRelativePoint
from drive_guidance.types import LossPolicy


def _layout():
    return SimpleAnchorLayout().add_pose(3, 144.0, 36.0, heading=math.pi).add_pose(4, 144.0, 108.0, heading=math.pi)


def test_field_point_converges():
    cfg = PlanConfig(translation_target=AbsolutePoint(72.0, 72.0), aim_target=AbsoluteHeading(0.0), use_field_pose=True)
    result = simulate_guidance(Scenario("fp", 0.0, 36.0, 0.0), cfg, layout=_layout(), duration_s=10.0)
    final = result["metrics"]["final_pose"]
    assert final["x"] == pytest.approx(72.0, abs=0.1)
    assert final["y"] == pytest.approx(72.0, abs=0.1)
    assert result["metrics"]["final_translation_error"] < 0.1
    assert result["metrics"]["mode_counts"] == {"field_pose": result["metrics"]["ticks"]}
    assert len(result["ticks"]) == result["metrics"]["ticks"]


def test_session_point_from_start_pose():
    cfg = PlanConfig(translation_target=SessionRelativePoint(24.0, 0.0), use_field_pose=True)
    result = simulate_guidance(Scenario("sp", 5.0, 5.0, 90.0), cfg, duration_s=5.0, record_history=False)
    final = result["metrics"]["final_pose"]
    assert final["x"] == pytest.approx(5.0, abs=0.05)
    assert final["y"] == pytest.approx(29.0, abs=0.05)
    assert "ticks" not in result


def test_anchor_handoff():
    cfg = PlanConfig(
        translation_target=AnchorRelativePoint(3, forward=6.0),
        aim_target=AnchorRelativePoint(3),
        use_observation=True,
        use_field_pose=True,
        gates=Gates.defaults(),
    )
    result = simulate_guidance(
        Scenario("handoff", 60.0, 36.0, 0.0),
        cfg,
        layout=_layout(),
        duration_s=8.0,
        camera_config=CameraConfig(max_range=60.0),
    )
    metrics = result["metrics"]
    assert metrics["final_pose"]["x"] == pytest.approx(138.0, abs=0.1)
    assert metrics["final_translation_error"] < 0.1
    assert metrics["handoff_count"] == 1
    assert metrics["last_anchor_id"] == 3
    assert metrics["mode_counts"] == {"adaptive": metrics["ticks"]}

    handoffs = [e for e in result["events"] if e["event"] == "translation_handoff"]
    assert handoffs[0]["to"] == "observation"
    last = result["ticks"][-1]["status"]
    assert last["obs_in_range"]
    assert last["blend_translation"] == 1.0


def test_any_anchor_follows_camera():
    cfg = PlanConfig(
        translation_target=AnchorRelativePoint(ANY_ANCHOR, forward=6.0),
        aim_target=AnchorRelativePoint(ANY_ANCHOR),
        use_observation=True,
        use_field_pose=True,
    )
    result = simulate_guidance(Scenario("any", 90.0, 40.0, 0.0), cfg, layout=_layout(), duration_s=8.0)
    metrics = result["metrics"]
    assert metrics["last_anchor_id"] == 3
    assert metrics["final_translation_error"] < 0.5
    assert metrics["final_pose"]["x"] == pytest.approx(138.0, abs=0.5)
    assert metrics["final_pose"]["y"] == pytest.approx(36.0, abs=0.5)


def test_localizer_dropout_with_zero_output_stops_robot():
    cfg = PlanConfig(
        translation_target=AbsolutePoint(72.0, 36.0),
        use_field_pose=True,
        loss_policy=LossPolicy.ZERO_OUTPUT,
    )
    result = simulate_guidance(
        Scenario("dropout", 0.0, 36.0, 0.0),
        cfg,
        duration_s=3.0,
        localizer_config=LocalizerConfig(dropout_after_sec=1.0),
    )
    xs = [s["x"] for s in result["state_history"]]
    stopped = [x for s, x in zip(result["state_history"], xs) if s["t"] > 1.05]
    assert max(stopped) - min(stopped) == pytest.approx(0.0, abs=1e-9)
    assert 20.0 < stopped[0] < 30.0
    assert result["ticks"][-1]["mask"] == {"translation": True, "rotation": False}
