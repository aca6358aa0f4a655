from .geometry import clamp, field_to_robot_xy, is_near_zero, lerp, rotate_xy, wrap_pi

__all__ = ["clamp", "field_to_robot_xy", "is_near_zero", "lerp", "rotate_xy", "wrap_pi"]
