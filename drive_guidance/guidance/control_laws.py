from __future__ import annotations

from typing import Tuple

import numpy as np

from drive_guidance.plan import Tuning

_MAG_EPS = 1e-9


def translation_command(forward_err: float, left_err: float, tuning: Tuning) -> Tuple[float, float]:
    """
    Proportional translation law in the robot frame.

    Returns (forward, lateral). The result is scaled down as a whole when its
    magnitude exceeds `max_translate_cmd`, so the direction of the error is kept.
    """
    kp = float(tuning.kp_translate)
    cmd = np.array([kp * float(forward_err), kp * float(left_err)], dtype=float)
    mag = float(np.linalg.norm(cmd))
    max_cmd = float(tuning.max_translate_cmd)
    if mag > max_cmd and mag > _MAG_EPS:
        cmd *= max_cmd / mag
    return float(cmd[0]), float(cmd[1])


def rotation_command(bearing_err: float, tuning: Tuning) -> float:
    err = float(bearing_err)
    if abs(err) <= float(tuning.aim_deadband_rad):
        return 0.0
    max_cmd = float(tuning.max_rotate_cmd)
    return float(np.clip(float(tuning.kp_aim) * err, -max_cmd, max_cmd))
