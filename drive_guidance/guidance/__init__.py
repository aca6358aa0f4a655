from .arbiter import AdaptiveState, ArbitrationResult, arbitrate
from .control_laws import rotation_command, translation_command
from .loss_policy import apply_loss_policy
from .overlay import GuidanceOverlay
from .pose_lock import PoseLockOverlay
from .solvers import Candidate, solve_candidate, solve_field_pose, solve_observation

__all__ = [
    'AdaptiveState',
    'ArbitrationResult',
    'arbitrate',
    'rotation_command',
    'translation_command',
    'apply_loss_policy',
    'GuidanceOverlay',
    'PoseLockOverlay',
    'Candidate',
    'solve_candidate',
    'solve_field_pose',
    'solve_observation',
]
