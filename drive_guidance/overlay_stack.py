from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from drive_guidance.types import OverlayOutput, OverrideMask, VelocityCommand

logger = logging.getLogger(__name__)


class Overlay(Protocol):
    def on_enable(self, dt: float) -> None:  # noqa: D102
        ...

    def on_disable(self, dt: float) -> None:  # noqa: D102
        ...

    def get(self, dt: float) -> OverlayOutput:  # noqa: D102
        ...


@dataclass
class OverlayLayer:
    name: str
    overlay: Overlay
    enabled_when: Callable[[], bool]
    requested_mask: OverrideMask = OverrideMask(True, True)
    active: bool = False
    last_output: OverlayOutput = field(default_factory=OverlayOutput.zero)


class OverlayStack:
    """
    Base drive command plus an ordered list of overlays.

    Each tick, layers whose `enabled_when()` is true are evaluated in order;
    the DOFs set in (output mask & requested mask) replace the command built so
    far. `on_enable` / `on_disable` fire on the edges of `enabled_when()`.
    """

    def __init__(self, base: Callable[[float], VelocityCommand]) -> None:
        self.base = base
        self.layers: List[OverlayLayer] = []
        self._last_command = VelocityCommand.zero()

    def add(
        self,
        name: str,
        overlay: Overlay,
        enabled_when: Callable[[], bool],
        requested_mask: Optional[OverrideMask] = None,
    ) -> "OverlayStack":
        if any(layer.name == name for layer in self.layers):
            raise ValueError(f"Duplicate overlay layer name: {name}")
        mask = OverrideMask.ALL if requested_mask is None else requested_mask
        if mask.is_none:
            raise ValueError(f"Overlay layer '{name}' requests no DOFs")
        self.layers.append(
            OverlayLayer(
                name=name,
                overlay=overlay,
                enabled_when=enabled_when,
                requested_mask=mask,
            )
        )
        return self

    def get(self, dt: float) -> VelocityCommand:
        cmd = self.base(dt)
        forward, lateral, angular = cmd.forward, cmd.lateral, cmd.angular

        for layer in self.layers:
            want = bool(layer.enabled_when())
            if want and not layer.active:
                layer.overlay.on_enable(dt)
                layer.active = True
                logger.debug("Overlay '%s' enabled", layer.name)
            elif not want and layer.active:
                layer.overlay.on_disable(dt)
                layer.active = False
                logger.debug("Overlay '%s' disabled", layer.name)
            if not layer.active:
                layer.last_output = OverlayOutput.zero()
                continue

            out = layer.overlay.get(dt)
            layer.last_output = out
            mask = out.mask.intersect(layer.requested_mask)
            if mask.translation:
                forward, lateral = out.command.forward, out.command.lateral
            if mask.rotation:
                angular = out.command.angular

        self._last_command = VelocityCommand(forward, lateral, angular)
        return self._last_command

    def get_status_dict(self) -> Dict[str, Any]:
        return {
            "command": self._last_command.to_dict(),
            "layers": [
                {
                    "name": layer.name,
                    "active": layer.active,
                    "mask": layer.last_output.mask.to_dict(),
                }
                for layer in self.layers
            ],
        }
