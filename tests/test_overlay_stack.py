import pytest

from drive_guidance.overlay_stack import OverlayStack
from drive_guidance.types import OverlayOutput, OverrideMask, VelocityCommand


class _FixedOverlay:
    def __init__(self, output: OverlayOutput) -> None:
        self.output = output
        self.enables = 0
        self.disables = 0

    def on_enable(self, dt: float) -> None:
        self.enables += 1

    def on_disable(self, dt: float) -> None:
        self.disables += 1

    def get(self, dt: float) -> OverlayOutput:
        return self.output


def _base(dt):
    return VelocityCommand(0.3, 0.2, 0.1)


def test_masked_dofs_replace_base():
    stack = OverlayStack(base=_base)
    aim = _FixedOverlay(OverlayOutput(VelocityCommand(0.9, 0.9, 0.5), OverrideMask.ROTATION_ONLY))
    stack.add("aim", aim, enabled_when=lambda: True)
    assert stack.get(0.02) == VelocityCommand(0.3, 0.2, 0.5)


def test_requested_mask_limits_overlay():
    stack = OverlayStack(base=_base)
    drive = _FixedOverlay(OverlayOutput(VelocityCommand(0.7, -0.1, 0.5), OverrideMask.ALL))
    stack.add("drive", drive, enabled_when=lambda: True, requested_mask=OverrideMask.TRANSLATION_ONLY)
    assert stack.get(0.02) == VelocityCommand(0.7, -0.1, 0.1)


def test_later_layers_win():
    stack = OverlayStack(base=_base)
    stack.add("a", _FixedOverlay(OverlayOutput(VelocityCommand(0.4, 0.4, 0.4), OverrideMask.ALL)), lambda: True)
    stack.add("b", _FixedOverlay(OverlayOutput(VelocityCommand(0.6, 0.6, 0.6), OverrideMask.TRANSLATION_ONLY)), lambda: True)
    assert stack.get(0.02) == VelocityCommand(0.6, 0.6, 0.4)


def test_enable_edges():
    stack = OverlayStack(base=_base)
    overlay = _FixedOverlay(OverlayOutput(VelocityCommand(0.0, 0.0, 0.0), OverrideMask.ALL))
    held = {"on": False}
    stack.add("hold", overlay, enabled_when=lambda: held["on"])

    assert stack.get(0.02) == VelocityCommand(0.3, 0.2, 0.1)
    held["on"] = True
    stack.get(0.02)
    stack.get(0.02)
    assert overlay.enables == 1
    held["on"] = False
    assert stack.get(0.02) == VelocityCommand(0.3, 0.2, 0.1)
    assert overlay.disables == 1

    status = stack.get_status_dict()
    assert status["layers"][0]["name"] == "hold"
    assert not status["layers"][0]["active"]


def test_duplicate_layer_name():
    stack = OverlayStack(base=_base)
    overlay = _FixedOverlay(OverlayOutput.zero())
    stack.add("x", overlay, lambda: True)
    with pytest.raises(ValueError):
        stack.add("x", overlay, lambda: True)


def test_empty_requested_mask_is_rejected():
    stack = OverlayStack(base=_base)
    overlay = _FixedOverlay(OverlayOutput.zero())
    with pytest.raises(ValueError):
        stack.add("x", overlay, lambda: True, requested_mask=OverrideMask.NONE)
    assert stack.layers == []
