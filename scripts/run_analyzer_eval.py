#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT_DIR / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from validation_trainer.services.analyzer_eval import evaluate_evalset  # noqa: E402


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the deterministic validation analyzer regression eval."
    )
    parser.add_argument(
        "--evalset",
        default=str(ROOT_DIR / "evals" / "validation_evalset_v0.1.jsonl"),
        help="Path to evalset jsonl",
    )
    parser.add_argument(
        "--min-overall",
        type=float,
        default=_float_env("ANALYZER_EVAL_MIN_OVERALL", 0.85),
        help="Minimum overall score threshold",
    )
    parser.add_argument(
        "--min-quality-accuracy",
        type=float,
        default=_float_env("ANALYZER_EVAL_MIN_QUALITY_ACCURACY", 0.8),
        help="Minimum quality label accuracy threshold",
    )
    parser.add_argument(
        "--json-out",
        default="",
        help="Optional path to write summary json",
    )
    parser.add_argument(
        "--show-failures",
        type=int,
        default=10,
        help="Max failed cases to print",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    summary = evaluate_evalset(Path(args.evalset).resolve())

    print(
        "[ANALYZER-EVAL] "
        f"cases={summary.case_count} "
        f"overall={summary.overall_score:.4f} "
        f"quality={summary.quality_accuracy:.4f} "
        f"signals={summary.signal_accuracy:.4f} "
        f"score_range={summary.score_range_rate:.4f} "
        f"mistakes={summary.mistake_mention_rate:.4f}"
    )

    failures_to_show = max(0, args.show_failures)
    if summary.failed_case_ids and failures_to_show > 0:
        print("[ANALYZER-EVAL] failed cases:")
        failed = [c for c in summary.case_results if c.case_id in summary.failed_case_ids]
        for case in failed[:failures_to_show]:
            print(
                f"  - {case.case_id}: quality={case.actual_quality}/{case.expected_quality}, "
                f"signals={case.signal_match_count}/{case.signal_total_count}, "
                f"score={case.score}"
            )

    if args.json_out:
        out_path = Path(args.json_out).resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(
            json.dumps(summary.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8"
        )
        print(f"[ANALYZER-EVAL] summary written: {out_path}")

    passed = (
        summary.overall_score >= args.min_overall
        and summary.quality_accuracy >= args.min_quality_accuracy
    )
    if passed:
        print("[ANALYZER-EVAL] PASS")
        return 0
    print(
        "[ANALYZER-EVAL] FAIL "
        f"(overall<{args.min_overall:.4f} or quality<{args.min_quality_accuracy:.4f})"
    )
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
