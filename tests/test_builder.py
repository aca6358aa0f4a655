import math

import pytest

from drive_guidance.builder import PlanBuilder
from drive_guidance.field.anchor_layout import SimpleAnchorLayout
from drive_guidance.offline.simulator import StaticObservationSource, StaticPoseEstimator
from drive_guidance.plan import GuidanceFeedback, PlanConfigError, Gates
from drive_guidance.targets import ANY_ANCHOR, AbsoluteHeading, AnchorRelativePoint
from drive_guidance.types import LossPolicy, OverrideMask, Pose2d


def _layout():
    return SimpleAnchorLayout().add_pose(3, 144.0, 36.0, heading=math.pi)


def test_requires_a_target():
    with pytest.raises(PlanConfigError) as exc:
        PlanBuilder().field_pose(StaticPoseEstimator()).build()
    assert "target" in str(exc.value)


def test_requires_feedback():
    with pytest.raises(PlanConfigError) as exc:
        PlanBuilder().translate_to_point(1.0, 2.0).build()
    assert any("feedback" in e for e in exc.value.errors)


def test_all_errors_are_reported_together():
    builder = (
        PlanBuilder()
        .translate_to_session_point(6.0)
        .aim_at_heading(0.0)
        .observation(StaticObservationSource(), min_quality=1.5)
        .gates(12.0, 9.0)
    )
    errors = builder.validation_errors()
    with pytest.raises(PlanConfigError) as exc:
        builder.build()
    assert exc.value.errors == errors
    text = "\n".join(errors)
    assert "min_quality" in text
    assert "enter_range" in text
    assert "gates(...) is only used" in text
    assert "absolute heading" in text
    assert "session-relative" in text
    assert len(errors) == 5


def test_duplicate_target():
    builder = PlanBuilder().translate_to_point(1.0, 2.0)
    with pytest.raises(PlanConfigError):
        builder.translate_to_anchor_point(3)
    builder.aim_at_heading_deg(90.0)
    with pytest.raises(PlanConfigError):
        builder.aim_at_point(0.0, 0.0)


def test_unsupported_target_kind():
    with pytest.raises(TypeError):
        PlanBuilder().aim_at(Pose2d())
    with pytest.raises(TypeError):
        PlanBuilder().translate_to(AbsoluteHeading(0.0))


def test_any_anchor_requires_observation():
    builder = PlanBuilder().aim_at_anchor_center(ANY_ANCHOR).field_pose(StaticPoseEstimator(), _layout())
    assert any("ANY_ANCHOR" in e for e in builder.validation_errors())


def test_anchor_targets_with_field_pose_need_layout():
    builder = PlanBuilder().translate_to_anchor_point(3, forward=6.0).field_pose(StaticPoseEstimator())
    assert any("anchor layout" in e for e in builder.validation_errors())

    builder = PlanBuilder().translate_to_anchor_point(7, forward=6.0).field_pose(StaticPoseEstimator(), _layout())
    assert any("anchor id 7" in e for e in builder.validation_errors())

    # Observation alone needs no layout.
    plan = PlanBuilder().translate_to_anchor_point(7).observation(StaticObservationSource()).build()
    assert plan.translation_target == AnchorRelativePoint(7)


def test_adaptive_plan_defaults():
    plan = (
        PlanBuilder()
        .translate_to_anchor_point(3, forward=6.0)
        .aim_at_anchor_center(3)
        .observation(StaticObservationSource())
        .field_pose(StaticPoseEstimator(), _layout())
        .loss_policy("zero_output")
        .build()
    )
    fb = plan.feedback
    assert fb.is_adaptive
    assert fb.gates == Gates.defaults()
    assert fb.prefer_observation_for_rotation
    assert fb.loss_policy == LossPolicy.ZERO_OUTPUT
    assert plan.requested_mask() == OverrideMask.ALL
    assert plan.to_dict()["translation_target"]["kind"] == "anchor_point"


def test_single_channel_plan_has_no_gates():
    plan = PlanBuilder().aim_at_heading(0.0).field_pose(StaticPoseEstimator()).build()
    assert not plan.feedback.is_adaptive
    assert plan.feedback.gates is None
    assert plan.requested_mask() == OverrideMask.ROTATION_ONLY


def test_feedback_requires_a_channel():
    with pytest.raises(PlanConfigError):
        GuidanceFeedback()


def test_gates_must_be_ordered():
    assert Gates(9.0, 12.0).validation_errors() == []
    assert Gates(9.0, 9.0).validation_errors()
    assert Gates(9.0, 12.0, blend_sec=-0.1).validation_errors()


def test_frames_are_applied():
    plan = (
        PlanBuilder()
        .translate_to_point(1.0, 0.0)
        .translation_frame(Pose2d(0.2, 0.0, 0.0))
        .aim_frame(Pose2d(0.0, 0.0, math.pi))
        .field_pose(StaticPoseEstimator())
        .build()
    )
    assert plan.control_frames.translation == Pose2d(0.2, 0.0, 0.0)
    assert plan.control_frames.aim.heading == pytest.approx(math.pi)
