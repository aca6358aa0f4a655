from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol

import numpy as np
import yaml

from drive_guidance.types import AnchorPose, Pose2d


class AnchorLayout(Protocol):
    def lookup(self, anchor_id: int) -> Optional[AnchorPose]:  # noqa: D102
        ...


class SimpleAnchorLayout:
    """In-memory anchor id -> field pose table."""

    def __init__(self, anchors: Iterable[AnchorPose] | None = None) -> None:
        self._by_id: Dict[int, AnchorPose] = {}
        for anchor in anchors or ():
            self.add(anchor)

    def add(self, anchor: AnchorPose) -> "SimpleAnchorLayout":
        self._by_id[int(anchor.anchor_id)] = anchor
        return self

    def add_pose(self, anchor_id: int, x: float, y: float, heading: float = 0.0, z: float = 0.0) -> "SimpleAnchorLayout":
        return self.add(AnchorPose(anchor_id=anchor_id, pose=Pose2d(x, y, heading), z=z))

    def lookup(self, anchor_id: int) -> Optional[AnchorPose]:
        return self._by_id.get(int(anchor_id))

    def has(self, anchor_id: int) -> bool:
        return self.lookup(anchor_id) is not None

    def require(self, anchor_id: int) -> AnchorPose:
        anchor = self.lookup(anchor_id)
        if anchor is None:
            raise KeyError(f"Anchor layout does not contain anchor id={anchor_id}")
        return anchor

    def remove(self, anchor_id: int) -> bool:
        return self._by_id.pop(int(anchor_id), None) is not None

    def ids(self) -> frozenset[int]:
        return frozenset(self._by_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, anchor_id: object) -> bool:
        return isinstance(anchor_id, int) and anchor_id in self._by_id

    def __repr__(self) -> str:
        return f"SimpleAnchorLayout(ids={sorted(self._by_id)})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anchors": [
                {"id": a.anchor_id, "x": a.pose.x, "y": a.pose.y, "heading": a.pose.heading, "z": a.z}
                for a in sorted(self._by_id.values(), key=lambda a: a.anchor_id)
            ]
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SimpleAnchorLayout":
        """
        Build from `{"anchors": [{"id": 3, "x": .., "y": .., "heading": ..}, ...]}`.

        `heading_deg` may be given instead of `heading`.
        """
        layout = cls()
        for item in d.get("anchors", []) or []:
            if "heading" in item:
                heading = float(item["heading"])
            else:
                heading = float(np.deg2rad(float(item.get("heading_deg", 0.0))))
            layout.add_pose(
                int(item["id"]),
                float(item.get("x", 0.0)),
                float(item.get("y", 0.0)),
                heading=heading,
                z=float(item.get("z", 0.0)),
            )
        return layout

    @classmethod
    def from_yaml(cls, filepath: str | Path) -> "SimpleAnchorLayout":
        data = yaml.safe_load(Path(filepath).read_text()) or {}
        if "drive_guidance" in data:
            data = data["drive_guidance"]
        if "ros__parameters" in data:
            data = data["ros__parameters"]
        if "anchor_layout" in data:
            data = data["anchor_layout"]
        return cls.from_dict(data)
