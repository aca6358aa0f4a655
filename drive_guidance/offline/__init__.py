from .simulator import (
    CameraConfig,
    HolonomicRobot,
    LocalizerConfig,
    OfflineSimulator,
    Scenario,
    SimulatedCamera,
    SimulatedLocalizer,
    StaticObservationSource,
    StaticPoseEstimator,
    simulate_guidance,
)

__all__ = [
    "CameraConfig",
    "HolonomicRobot",
    "LocalizerConfig",
    "OfflineSimulator",
    "Scenario",
    "SimulatedCamera",
    "SimulatedLocalizer",
    "StaticObservationSource",
    "StaticPoseEstimator",
    "simulate_guidance",
]
