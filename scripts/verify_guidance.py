#!/usr/bin/env python3

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Dict, List

import numpy as np

from drive_guidance.config import PlanConfig, load_plan_config
from drive_guidance.field.anchor_layout import SimpleAnchorLayout
from drive_guidance.logging.guidance_logger import GuidanceLogger
from drive_guidance.offline.simulator import CameraConfig, LocalizerConfig, Scenario, simulate_guidance
from drive_guidance.plan import Gates
from drive_guidance.targets import ANY_ANCHOR, AbsoluteHeading, AbsolutePoint, AnchorRelativePoint, SessionRelativePoint


def _default_layout() -> SimpleAnchorLayout:
    # Two anchors on the far wall, facing back down the field (-x).
    layout = SimpleAnchorLayout()
    layout.add_pose(3, 144.0, 36.0, heading=np.pi)
    layout.add_pose(4, 144.0, 108.0, heading=np.pi)
    return layout


def _build_cases() -> Dict[str, PlanConfig]:
    cases: Dict[str, PlanConfig] = {}

    cases["field_point"] = PlanConfig(
        translation_target=AbsolutePoint(72.0, 72.0),
        aim_target=AbsoluteHeading(0.0),
        use_field_pose=True,
    )
    cases["session_forward"] = PlanConfig(
        translation_target=SessionRelativePoint(24.0, 0.0),
        use_field_pose=True,
    )
    cases["anchor_handoff"] = PlanConfig(
        translation_target=AnchorRelativePoint(3, forward=6.0),
        aim_target=AnchorRelativePoint(3),
        use_observation=True,
        use_field_pose=True,
        gates=Gates.defaults(),
    )
    cases["any_anchor_aim"] = PlanConfig(
        translation_target=AnchorRelativePoint(ANY_ANCHOR, forward=6.0),
        aim_target=AnchorRelativePoint(ANY_ANCHOR),
        use_observation=True,
        use_field_pose=True,
        gates=Gates.defaults(),
    )
    return cases


def _stats(values: List[float]) -> dict:
    if not values:
        return {"mean": None, "max": None}
    arr = np.asarray(values, dtype=float).reshape(-1)
    return {"mean": float(np.mean(arr)), "max": float(np.max(arr))}


def main() -> None:
    parser = argparse.ArgumentParser(description="Drive guidance closed-loop verification (OFFLINE).")
    parser.add_argument("--config", type=str, default="", help="Plan YAML; overrides the built-in cases.")
    parser.add_argument("--case", type=str, default="all", help="all|field_point|session_forward|anchor_handoff|any_anchor_aim")
    parser.add_argument("--runs", type=int, default=3, help="Runs per case (random start offsets).")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--dt", type=float, default=0.02)
    parser.add_argument("--duration", type=float, default=10.0)
    parser.add_argument("--pose-noise", type=float, default=0.0, help="Localizer position noise std.")
    parser.add_argument("--camera-range", type=float, default=60.0)
    parser.add_argument("--log-dir", type=str, default="", help="Write one JSON guidance log per run.")
    parser.add_argument("--output", type=str, default="")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(name)s: %(message)s")

    layout = _default_layout()
    if args.config:
        cfg = load_plan_config(args.config)
        if cfg.anchor_layout is not None:
            layout = cfg.anchor_layout
        cases = {Path(args.config).stem: cfg}
    else:
        cases = _build_cases()
        if str(args.case).strip().lower() != "all":
            wanted = str(args.case).strip().lower()
            cases = {k: v for k, v in cases.items() if k == wanted}
            if not cases:
                raise SystemExit(f"Unknown case: {args.case}")

    rng = np.random.default_rng(int(args.seed))
    results: List[dict] = []
    for name, cfg in cases.items():
        for i in range(int(args.runs)):
            scenario = Scenario(
                name=f"{name}_{i}",
                start_x=float(rng.uniform(0.0, 24.0)),
                start_y=float(rng.uniform(24.0, 48.0)),
                start_heading_deg=float(rng.uniform(-20.0, 20.0)),
            )
            result = simulate_guidance(
                scenario,
                cfg,
                layout=layout,
                dt=float(args.dt),
                duration_s=float(args.duration),
                camera_config=CameraConfig(max_range=float(args.camera_range), seed=int(rng.integers(0, 2**31 - 1))),
                localizer_config=LocalizerConfig(position_noise_std=float(args.pose_noise), seed=int(rng.integers(0, 2**31 - 1))),
                record_history=bool(args.log_dir),
            )
            result["case"] = name
            if args.log_dir:
                GuidanceLogger.from_offline_result(result, args.log_dir, run_id=scenario.name).save()
                result.pop("ticks", None)
                result.pop("state_history", None)
            results.append(result)

    summary_cases: Dict[str, dict] = {}
    for name in cases:
        items = [r for r in results if r["case"] == name]
        t_err = [float(r["metrics"]["final_translation_error"]) for r in items if r["metrics"]["final_translation_error"] is not None]
        r_err = [float(r["metrics"]["final_rotation_error"]) for r in items if r["metrics"]["final_rotation_error"] is not None]
        summary_cases[name] = {
            "n_runs": int(len(items)),
            "final_translation_error": _stats(t_err),
            "final_rotation_error": _stats(r_err),
            "handoffs": _stats([float(r["metrics"]["handoff_count"]) for r in items]),
        }

    out_obj = {"summary": {"n_runs": int(len(results)), "cases": summary_cases}, "runs": results}
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(out_obj, indent=2))
        print(f"Wrote report: {out}")
    else:
        print(json.dumps(out_obj["summary"], indent=2))


if __name__ == "__main__":
    main()
