from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from drive_guidance.config import PlanConfig
from drive_guidance.field.anchor_layout import SimpleAnchorLayout
from drive_guidance.overlay_stack import OverlayStack
from drive_guidance.types import AnchorPose, ObservationSample, Pose2d, PoseEstimate, VelocityCommand
from drive_guidance.utils.geometry import wrap_pi


@dataclass
class HolonomicRobot:
    """Ideal holonomic drive: unit commands map linearly to robot-frame velocities."""

    pose: Pose2d = Pose2d()
    speed_per_cmd: float = 40.0  # distance units/s at command 1.0
    rate_per_cmd: float = 3.0  # rad/s at command 1.0
    t: float = 0.0

    def step(self, command: VelocityCommand, dt: float) -> Pose2d:
        dt = float(dt)
        dx = float(np.clip(command.forward, -1.0, 1.0)) * self.speed_per_cmd * dt
        dy = float(np.clip(command.lateral, -1.0, 1.0)) * self.speed_per_cmd * dt
        dth = float(np.clip(command.angular, -1.0, 1.0)) * self.rate_per_cmd * dt
        self.pose = self.pose.then(Pose2d(dx, dy, dth))
        self.t += dt
        return self.pose

    def to_dict(self) -> Dict[str, float]:
        d = self.pose.to_dict()
        d["t"] = float(self.t)
        return d


@dataclass
class OfflineSimulator:
    robot: HolonomicRobot

    def reset(self, pose: Pose2d) -> None:
        self.robot.pose = pose
        self.robot.t = 0.0

    def step(self, command: VelocityCommand, dt: float) -> Pose2d:
        return self.robot.step(command, dt=float(dt))

    def get_pose(self) -> Pose2d:
        return self.robot.pose


@dataclass
class CameraConfig:
    max_range: float = 60.0
    fov_deg: float = 70.0
    quality: float = 0.9
    age_sec: float = 0.03
    position_noise_std: float = 0.0
    heading_noise_std: float = 0.0
    provide_orientation: bool = True
    seed: Optional[int] = None


class SimulatedCamera:
    """
    Observation source that sees the nearest layout anchor inside range and FOV.

    An anchor is only reported when the robot is in front of its face
    (the anchor's +x axis points back toward the robot).
    """

    def __init__(self, robot: HolonomicRobot, layout: SimpleAnchorLayout, config: Optional[CameraConfig] = None) -> None:
        self.robot = robot
        self.layout = layout
        self.config = config or CameraConfig()
        self.rng = np.random.default_rng(self.config.seed)
        self.blocked = False

    def _visible(self, anchor: AnchorPose) -> Optional[Pose2d]:
        robot_to_anchor = self.robot.pose.inverse().then(anchor.pose)
        rng = robot_to_anchor.norm
        if rng > self.config.max_range or rng < 1e-6:
            return None
        bearing = math.atan2(robot_to_anchor.y, robot_to_anchor.x)
        if abs(bearing) > 0.5 * math.radians(self.config.fov_deg):
            return None
        anchor_to_robot = robot_to_anchor.inverse()
        if anchor_to_robot.x <= 0.0:
            return None
        return robot_to_anchor

    def sample(self, dt: float) -> ObservationSample:
        if self.blocked:
            return ObservationSample.none()
        best_id = None
        best = None
        for anchor_id in sorted(self.layout.ids()):
            rel = self._visible(self.layout.require(anchor_id))
            if rel is not None and (best is None or rel.norm < best.norm):
                best_id, best = anchor_id, rel
        if best is None:
            return ObservationSample.none()

        cfg = self.config
        fwd, left = best.x, best.y
        if cfg.position_noise_std > 0:
            fwd += float(self.rng.normal(0.0, cfg.position_noise_std))
            left += float(self.rng.normal(0.0, cfg.position_noise_std))
        if not cfg.provide_orientation:
            return ObservationSample.of_position(fwd, left, quality=cfg.quality, age_sec=cfg.age_sec, anchor_id=best_id)
        heading = best.heading
        if cfg.heading_noise_std > 0:
            heading = wrap_pi(heading + float(self.rng.normal(0.0, cfg.heading_noise_std)))
        return ObservationSample.of_pose(best_id, fwd, left, heading, quality=cfg.quality, age_sec=cfg.age_sec)


@dataclass
class LocalizerConfig:
    quality: float = 1.0
    age_sec: float = 0.02
    position_noise_std: float = 0.0
    heading_noise_std: float = 0.0
    dropout_after_sec: Optional[float] = None
    seed: Optional[int] = None


class SimulatedLocalizer:
    """Pose estimator reporting the robot's true pose plus optional noise."""

    def __init__(self, robot: HolonomicRobot, config: Optional[LocalizerConfig] = None) -> None:
        self.robot = robot
        self.config = config or LocalizerConfig()
        self.rng = np.random.default_rng(self.config.seed)

    def get_estimate(self) -> PoseEstimate:
        cfg = self.config
        if cfg.dropout_after_sec is not None and self.robot.t >= cfg.dropout_after_sec:
            return PoseEstimate.no_pose()
        pose = self.robot.pose
        if cfg.position_noise_std > 0 or cfg.heading_noise_std > 0:
            noise = self.rng.normal(0.0, 1.0, size=3)
            pose = Pose2d(
                pose.x + cfg.position_noise_std * float(noise[0]),
                pose.y + cfg.position_noise_std * float(noise[1]),
                wrap_pi(pose.heading + cfg.heading_noise_std * float(noise[2])),
            )
        return PoseEstimate.of(pose, quality=cfg.quality, age_sec=cfg.age_sec)


class StaticObservationSource:
    """Observation source returning whatever `sample_value` currently holds."""

    def __init__(self, sample_value: Optional[ObservationSample] = None) -> None:
        self.sample_value = sample_value if sample_value is not None else ObservationSample.none()
        self.calls = 0

    def sample(self, dt: float) -> Optional[ObservationSample]:
        self.calls += 1
        return self.sample_value


class StaticPoseEstimator:
    """Pose estimator returning whatever `estimate` currently holds."""

    def __init__(self, estimate: Optional[PoseEstimate] = None) -> None:
        self.estimate = estimate if estimate is not None else PoseEstimate.no_pose()

    def set_pose(self, x: float, y: float, heading: float = 0.0, quality: float = 1.0, age_sec: float = 0.0) -> None:
        self.estimate = PoseEstimate.of(Pose2d(x, y, heading), quality=quality, age_sec=age_sec)

    def get_estimate(self) -> Optional[PoseEstimate]:
        return self.estimate


@dataclass(frozen=True)
class Scenario:
    name: str = "default"
    start_x: float = 0.0
    start_y: float = 0.0
    start_heading_deg: float = 0.0

    @property
    def start_pose(self) -> Pose2d:
        return Pose2d(self.start_x, self.start_y, math.radians(self.start_heading_deg))


def simulate_guidance(
    scenario: Scenario,
    config: PlanConfig,
    layout: Optional[SimpleAnchorLayout] = None,
    dt: float = 0.02,
    duration_s: float = 5.0,
    camera_config: Optional[CameraConfig] = None,
    localizer_config: Optional[LocalizerConfig] = None,
    robot: Optional[HolonomicRobot] = None,
    record_history: bool = True,
) -> Dict[str, Any]:
    """
    Closed-loop run of one guidance plan on an ideal holonomic robot.

    The driver's own command is zero throughout, so the robot only moves on the
    DOFs the overlay overrides.
    """
    layout = layout if layout is not None else (config.anchor_layout or SimpleAnchorLayout())
    robot = robot or HolonomicRobot()
    sim = OfflineSimulator(robot=robot)
    sim.reset(scenario.start_pose)

    camera = SimulatedCamera(robot, layout, camera_config) if config.use_observation else None
    localizer = SimulatedLocalizer(robot, localizer_config) if config.use_field_pose else None
    plan = config.build_plan(observation_source=camera, pose_estimator=localizer, anchor_layout=layout)
    overlay = plan.overlay()

    stack = OverlayStack(base=lambda _dt: VelocityCommand.zero())
    stack.add("guidance", overlay, enabled_when=lambda: True, requested_mask=plan.requested_mask())

    ticks: Optional[List[Dict[str, Any]]] = [] if record_history else None
    states: Optional[List[Dict[str, Any]]] = [] if record_history else None
    events: List[Dict[str, Any]] = []

    n_steps = int(math.ceil(float(duration_s) / float(dt)))
    prev_obs_translation: Optional[bool] = None
    prev_mask = None
    mode_counts: Dict[str, int] = {}
    for _ in range(n_steps):
        t = float(robot.t)
        if states is not None:
            states.append(robot.to_dict())

        command = stack.get(dt)
        out = overlay.last_output
        status = overlay.get_status_dict()
        mode_counts[status["mode"]] = mode_counts.get(status["mode"], 0) + 1

        obs_t = bool(status["blend_translation"] >= 0.5)
        if prev_obs_translation is not None and obs_t != prev_obs_translation:
            events.append({"t": t, "event": "translation_handoff", "to": "observation" if obs_t else "field_pose"})
        prev_obs_translation = obs_t
        if prev_mask is not None and out.mask != prev_mask:
            events.append({"t": t, "event": "mask_change", "mask": out.mask.to_dict()})
        prev_mask = out.mask

        if ticks is not None:
            ticks.append(
                {
                    "timestamp": t,
                    "command": out.command.to_dict(),
                    "mask": out.mask.to_dict(),
                    "status": status,
                }
            )
        sim.step(command, dt)

    final = sim.get_pose()
    last = overlay.get_status_dict()
    solved = last["field_pose"] if last["field_pose"]["valid"] else last["observation"]
    metrics = {
        "ticks": int(n_steps),
        "time_s": float(robot.t),
        "final_pose": final.to_dict(),
        "final_translation_error": float(math.hypot(solved["forward_error"], solved["left_error"]))
        if solved["can_translate"]
        else None,
        "final_rotation_error": float(abs(solved["rotation_error"])) if solved["can_rotate"] else None,
        "mode_counts": mode_counts,
        "handoff_count": int(sum(1 for e in events if e["event"] == "translation_handoff")),
        "last_anchor_id": int(last["last_anchor_id"]),
    }

    result: Dict[str, Any] = {
        "scenario": asdict(scenario),
        "plan": plan.to_dict(),
        "metrics": metrics,
        "events": events,
    }
    if ticks is not None:
        result["ticks"] = ticks
    if states is not None:
        result["state_history"] = states
    return result
