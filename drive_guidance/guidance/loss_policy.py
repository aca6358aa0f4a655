from __future__ import annotations

from drive_guidance.types import LossPolicy, OverlayOutput, OverrideMask, VelocityCommand


def apply_loss_policy(
    command: VelocityCommand,
    mask: OverrideMask,
    requested: OverrideMask,
    policy: LossPolicy,
) -> OverlayOutput:
    """
    Fill in requested DOFs that no feedback channel could drive this tick.

    `mask` marks the DOFs that do have a contributor; their command components
    are kept. For each requested DOF without one:
    - PASS_THROUGH: bit stays clear, the driver keeps control of that DOF.
    - ZERO_OUTPUT: the DOF is commanded to zero and its bit is set.
    Bits outside `requested` are never set.
    """
    mask = mask.intersect(requested)
    forward = float(command.forward) if mask.translation else 0.0
    lateral = float(command.lateral) if mask.translation else 0.0
    angular = float(command.angular) if mask.rotation else 0.0

    if policy == LossPolicy.ZERO_OUTPUT:
        mask = mask.union(requested)

    return OverlayOutput(VelocityCommand(forward, lateral, angular), mask)


def is_loss(mask: OverrideMask, requested: OverrideMask) -> bool:
    """True when at least one requested DOF has no contributor."""
    mask = mask.intersect(requested)
    return bool((requested.translation and not mask.translation) or (requested.rotation and not mask.rotation))
