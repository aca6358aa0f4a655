from .anchor_layout import AnchorLayout, SimpleAnchorLayout

__all__ = ["AnchorLayout", "SimpleAnchorLayout"]
