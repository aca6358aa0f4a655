from __future__ import annotations

import numpy as np

_EPS = 1e-9


def wrap_pi(angle_rad: float) -> float:
    return float((angle_rad + np.pi) % (2.0 * np.pi) - np.pi)


def clamp(value: float, lo: float, hi: float) -> float:
    return float(np.clip(value, lo, hi))


def lerp(a: float, b: float, t: float) -> float:
    return float(a + (b - a) * t)


def is_near_zero(value: float, eps: float = _EPS) -> bool:
    return bool(abs(float(value)) < eps)


def rotate_xy(vec_xy: np.ndarray, angle_rad: float) -> np.ndarray:
    """Rotate a 2D vector CCW by `angle_rad`."""
    vec_xy = np.asarray(vec_xy, dtype=float).reshape(2)
    c = float(np.cos(angle_rad))
    s = float(np.sin(angle_rad))
    return np.array([c * vec_xy[0] - s * vec_xy[1], s * vec_xy[0] + c * vec_xy[1]], dtype=float)


def field_to_robot_xy(delta_field_xy: np.ndarray, robot_heading_rad: float) -> np.ndarray:
    # Field axes -> robot forward/left axes.
    return rotate_xy(delta_field_xy, -float(robot_heading_rad))
