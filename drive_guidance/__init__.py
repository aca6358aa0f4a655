"""Drive guidance: adaptive observation / field-pose alignment overlays for holonomic drives."""

from .builder import PlanBuilder
from .plan import GuidancePlan, PlanConfigError
from .targets import ANY_ANCHOR, AbsoluteHeading, AbsolutePoint, AnchorRelativePoint, SessionRelativePoint
from .types import LossPolicy, ObservationSample, OverlayOutput, OverrideMask, Pose2d, PoseEstimate, VelocityCommand

__all__ = [
    'PlanBuilder',
    'GuidancePlan',
    'PlanConfigError',
    'ANY_ANCHOR',
    'AbsoluteHeading',
    'AbsolutePoint',
    'AnchorRelativePoint',
    'SessionRelativePoint',
    'LossPolicy',
    'ObservationSample',
    'OverlayOutput',
    'OverrideMask',
    'Pose2d',
    'PoseEstimate',
    'VelocityCommand',
]
