from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from drive_guidance.builder import PlanBuilder
from drive_guidance.field.anchor_layout import AnchorLayout, SimpleAnchorLayout
from drive_guidance.plan import (
    ControlFrames,
    FieldPoseFeedback,
    Gates,
    GuidancePlan,
    ObservationFeedback,
    ObservationSource,
    PlanConfigError,
    PoseEstimator,
    Tuning,
)
from drive_guidance.targets import (
    ANY_ANCHOR,
    AbsoluteHeading,
    AbsolutePoint,
    AnchorRelativePoint,
    SessionRelativePoint,
    target_to_dict,
)
from drive_guidance.types import LossPolicy, Pose2d


def _unwrap(data: Dict[str, Any]) -> Dict[str, Any]:
    if "drive_guidance" in data:
        data = data["drive_guidance"]
    if "ros__parameters" in data:
        data = data["ros__parameters"]
    return data


def _angle(d: Dict[str, Any], key: str, default: float = 0.0) -> float:
    # `<key>` in radians, or `<key>_deg` in degrees.
    if key in d:
        return float(d[key])
    if f"{key}_deg" in d:
        return math.radians(float(d[f"{key}_deg"]))
    return float(default)


def _anchor_id(value: Any) -> int:
    if value is None or (isinstance(value, str) and value.strip().lower() == "any"):
        return ANY_ANCHOR
    return int(value)


def target_from_dict(d: Optional[Dict[str, Any]]):
    if d is None:
        return None
    if not isinstance(d, dict) or "kind" not in d:
        raise PlanConfigError(f"target must be a mapping with a 'kind' key, got {d!r}")
    kind = str(d["kind"])
    if kind == "absolute_point":
        return AbsolutePoint(float(d.get("x", 0.0)), float(d.get("y", 0.0)))
    if kind == "anchor_point":
        return AnchorRelativePoint(
            _anchor_id(d.get("anchor_id")),
            float(d.get("forward", 0.0)),
            float(d.get("left", 0.0)),
        )
    if kind == "absolute_heading":
        return AbsoluteHeading(_angle(d, "heading"))
    if kind == "session_point":
        return SessionRelativePoint(float(d.get("forward", 0.0)), float(d.get("left", 0.0)))
    raise PlanConfigError(f"unknown target kind '{kind}'")


def _section(d: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = d.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PlanConfigError(f"{key} must be a mapping, got {value!r}")
    return value


def _pose_from_dict(d: Optional[Dict[str, Any]]) -> Pose2d:
    d = d or {}
    if not isinstance(d, dict):
        raise PlanConfigError(f"control frame must be a mapping, got {d!r}")
    return Pose2d(float(d.get("x", 0.0)), float(d.get("y", 0.0)), _angle(d, "heading"))


@dataclass
class PlanConfig:
    """Declarative plan settings; runtime collaborators are bound in `build_plan`."""

    translation_target: Any = None
    aim_target: Any = None
    control_frames: ControlFrames = field(default_factory=ControlFrames.robot_center)
    tuning: Tuning = field(default_factory=Tuning.defaults)

    use_observation: bool = False
    obs_max_age_sec: float = ObservationFeedback.DEFAULT_MAX_AGE_SEC
    obs_min_quality: float = ObservationFeedback.DEFAULT_MIN_QUALITY

    use_field_pose: bool = False
    pose_max_age_sec: float = FieldPoseFeedback.DEFAULT_MAX_AGE_SEC
    pose_min_quality: float = FieldPoseFeedback.DEFAULT_MIN_QUALITY

    gates: Optional[Gates] = None
    prefer_observation_for_rotation: bool = True
    loss_policy: LossPolicy = LossPolicy.PASS_THROUGH
    anchor_layout: Optional[SimpleAnchorLayout] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PlanConfig":
        d = _unwrap(d or {})
        cfg = cls()
        cfg.translation_target = target_from_dict(d.get("translation_target"))
        cfg.aim_target = target_from_dict(d.get("aim_target"))

        frames = _section(d, "control_frames")
        cfg.control_frames = ControlFrames(
            translation=_pose_from_dict(frames.get("translation")),
            aim=_pose_from_dict(frames.get("aim")),
        )

        if "tuning" in d:
            t = _section(d, "tuning")
            base = Tuning.defaults()
            cfg.tuning = Tuning(
                kp_translate=float(t.get("kp_translate", base.kp_translate)),
                max_translate_cmd=float(t.get("max_translate_cmd", base.max_translate_cmd)),
                kp_aim=float(t.get("kp_aim", base.kp_aim)),
                max_rotate_cmd=float(t.get("max_rotate_cmd", base.max_rotate_cmd)),
                aim_deadband_rad=float(t["aim_deadband_rad"])
                if "aim_deadband_rad" in t
                else _angle(t, "aim_deadband", base.aim_deadband_rad),
            )

        obs = d.get("observation")
        if obs is not None and obs is not False:
            obs = obs if isinstance(obs, dict) else {}
            cfg.use_observation = bool(obs.get("enabled", True))
            cfg.obs_max_age_sec = float(obs.get("max_age_sec", cfg.obs_max_age_sec))
            cfg.obs_min_quality = float(obs.get("min_quality", cfg.obs_min_quality))

        pose = d.get("field_pose")
        if pose is not None and pose is not False:
            pose = pose if isinstance(pose, dict) else {}
            cfg.use_field_pose = bool(pose.get("enabled", True))
            cfg.pose_max_age_sec = float(pose.get("max_age_sec", cfg.pose_max_age_sec))
            cfg.pose_min_quality = float(pose.get("min_quality", cfg.pose_min_quality))

        if d.get("gates") is not None:
            g = _section(d, "gates")
            base_g = Gates.defaults()
            cfg.gates = Gates(
                enter_range=float(g.get("enter_range", base_g.enter_range)),
                exit_range=float(g.get("exit_range", base_g.exit_range)),
                blend_sec=float(g.get("blend_sec", base_g.blend_sec)),
            )

        cfg.prefer_observation_for_rotation = bool(d.get("prefer_observation_for_rotation", True))
        try:
            cfg.loss_policy = LossPolicy(str(d.get("loss_policy", LossPolicy.PASS_THROUGH.value)))
        except ValueError as exc:
            raise PlanConfigError(f"unknown loss_policy '{d.get('loss_policy')}'") from exc

        if d.get("anchor_layout") is not None:
            cfg.anchor_layout = SimpleAnchorLayout.from_dict(_section(d, "anchor_layout"))
        return cfg

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PlanConfig":
        raw = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(raw, dict):
            raise PlanConfigError(f"{path}: expected a mapping at the top level")
        return cls.from_dict(raw)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "translation_target": target_to_dict(self.translation_target),
            "aim_target": target_to_dict(self.aim_target),
            "control_frames": self.control_frames.to_dict(),
            "tuning": self.tuning.to_dict(),
            "observation": {
                "enabled": self.use_observation,
                "max_age_sec": self.obs_max_age_sec,
                "min_quality": self.obs_min_quality,
            },
            "field_pose": {
                "enabled": self.use_field_pose,
                "max_age_sec": self.pose_max_age_sec,
                "min_quality": self.pose_min_quality,
            },
            "gates": None if self.gates is None else self.gates.to_dict(),
            "prefer_observation_for_rotation": self.prefer_observation_for_rotation,
            "loss_policy": self.loss_policy.value,
            "anchor_layout": None if self.anchor_layout is None else self.anchor_layout.to_dict(),
        }

    def build_plan(
        self,
        observation_source: Optional[ObservationSource] = None,
        pose_estimator: Optional[PoseEstimator] = None,
        anchor_layout: Optional[AnchorLayout] = None,
    ) -> GuidancePlan:
        """Bind runtime collaborators and build a validated plan."""
        errors = []
        if self.use_observation and observation_source is None:
            errors.append("configuration enables observation but no observation source was given")
        if self.use_field_pose and pose_estimator is None:
            errors.append("configuration enables field_pose but no pose estimator was given")
        if errors:
            raise PlanConfigError(errors)

        builder = PlanBuilder()
        if self.translation_target is not None:
            builder.translate_to(self.translation_target)
        if self.aim_target is not None:
            builder.aim_at(self.aim_target)
        builder.control_frames(self.control_frames).tuning(self.tuning)

        if self.use_observation:
            builder.observation(observation_source, self.obs_max_age_sec, self.obs_min_quality)
        layout = anchor_layout if anchor_layout is not None else self.anchor_layout
        if self.use_field_pose:
            builder.field_pose(pose_estimator, layout, self.pose_max_age_sec, self.pose_min_quality)
        if self.gates is not None:
            builder.gates(self.gates.enter_range, self.gates.exit_range, self.gates.blend_sec)
        builder.prefer_observation_for_rotation(self.prefer_observation_for_rotation)
        builder.loss_policy(self.loss_policy)
        return builder.build()


def load_plan_config(path: str | Path) -> PlanConfig:
    return PlanConfig.from_yaml(path)
