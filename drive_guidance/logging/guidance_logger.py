from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from drive_guidance.types import OverlayOutput


def _utc_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class NumpyEncoder(json.JSONEncoder):
    def default(self, obj):  # noqa: D102
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, (np.floating, np.integer)):
            return obj.item()
        if isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)


@dataclass
class GuidanceLogger:
    """Collects per-tick guidance output and events for one run, saved as JSON."""

    output_dir: Path
    run_id: str = ""
    mode: str = "offline"
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        if not self.run_id:
            self.run_id = uuid.uuid4().hex[:8]
        self.log_data: dict[str, Any] = {
            "metadata": {
                "run_id": self.run_id,
                "mode": self.mode,
                "timestamp": _utc_now(),
                "tags": list(self.tags),
                "schema_version": "v1",
            },
            "config": {},
            "ticks": [],
            "state_history": [],
            "events": [],
            "metrics": {},
        }

    def log_config(self, plan: dict | None = None, scenario: dict | None = None, extra: dict | None = None) -> None:
        payload: dict[str, Any] = {}
        if plan is not None:
            payload["plan"] = plan
        if scenario is not None:
            payload["scenario"] = scenario
        if extra is not None:
            payload["extra"] = extra
        self.log_data["config"] = payload

    def log_tick(self, timestamp: float, output: OverlayOutput, status: dict | None = None) -> None:
        self.log_data["ticks"].append(
            {
                "timestamp": float(timestamp),
                "command": output.command.to_dict(),
                "mask": output.mask.to_dict(),
                "status": status or {},
            }
        )

    def log_state(self, timestamp: float, state: dict) -> None:
        self.log_data["state_history"].append({"timestamp": float(timestamp), "state": state})

    def log_event(self, timestamp: float, event_type: str, details: dict | None = None) -> None:
        self.log_data["events"].append({"timestamp": float(timestamp), "type": str(event_type), "details": details or {}})

    def set_metrics(self, metrics: dict) -> None:
        self.log_data["metrics"] = metrics

    def compute_summary_metrics(self) -> None:
        metrics = dict(self.log_data.get("metrics") or {})
        ticks = self.log_data.get("ticks") or []
        if not ticks or "ticks" in metrics:
            self.log_data["metrics"] = metrics
            return

        mode_counts: dict[str, int] = {}
        translation = 0
        rotation = 0
        magnitudes = []
        handoffs = 0
        prev_choice = None
        for item in ticks:
            status = item.get("status") or {}
            mode = str(status.get("mode", "unknown"))
            mode_counts[mode] = mode_counts.get(mode, 0) + 1

            mask = item.get("mask") or {}
            translation += int(bool(mask.get("translation")))
            rotation += int(bool(mask.get("rotation")))

            cmd = item.get("command") or {}
            magnitudes.append(float(np.hypot(float(cmd.get("forward", 0.0)), float(cmd.get("lateral", 0.0)))))

            # Observation takes over translation once the blend passes halfway.
            blend = status.get("blend_translation")
            if blend is not None:
                choice = float(blend) >= 0.5
                if prev_choice is not None and choice != prev_choice:
                    handoffs += 1
                prev_choice = choice

        n = len(ticks)
        metrics.update(
            {
                "ticks": int(n),
                "mode_counts": mode_counts,
                "translation_override_ratio": float(translation / n),
                "rotation_override_ratio": float(rotation / n),
                "handoff_count": int(handoffs),
                "mean_translation_cmd": float(np.mean(magnitudes)),
            }
        )
        self.log_data["metrics"] = metrics

    def save(self, filename: str | None = None) -> Path:
        self.compute_summary_metrics()
        name = filename or f"{self.run_id}.json"
        path = self.output_dir / name
        path.write_text(json.dumps(self.log_data, indent=2, ensure_ascii=False, cls=NumpyEncoder))
        return path

    @staticmethod
    def from_offline_result(
        result: dict[str, Any],
        output_dir: str | Path,
        run_id: str | None = None,
        mode: str = "offline",
        tags: list[str] | None = None,
    ) -> "GuidanceLogger":
        logger = GuidanceLogger(output_dir=Path(output_dir), run_id=run_id or "", mode=mode, tags=tags or [])
        logger.log_config(plan=result.get("plan"), scenario=result.get("scenario"))
        logger.log_data["ticks"] = result.get("ticks", []) or []
        logger.log_data["state_history"] = result.get("state_history", []) or []
        logger.log_data["events"] = result.get("events", []) or []
        logger.log_data["metrics"] = result.get("metrics", {}) or {}
        return logger
