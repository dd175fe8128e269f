from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path

from validation_trainer.services.validation_analyzer import (
    analyze_response,
    classify_validation_quality,
    extract_signals,
)


@dataclass(slots=True)
class EvalCaseResult:
    case_id: str
    quality_match: bool
    expected_quality: str
    actual_quality: str
    signal_match_count: int
    signal_total_count: int
    score: int
    score_in_range: bool
    mention_expected_count: int
    mention_match_count: int
    signal_mismatches: list[str]


@dataclass(slots=True)
class EvalSummary:
    case_count: int
    quality_accuracy: float
    signal_accuracy: float
    score_range_rate: float
    mistake_mention_rate: float
    overall_score: float
    failed_case_ids: list[str]
    case_results: list[EvalCaseResult]

    def to_dict(self) -> dict:
        return {
            "case_count": self.case_count,
            "quality_accuracy": self.quality_accuracy,
            "signal_accuracy": self.signal_accuracy,
            "score_range_rate": self.score_range_rate,
            "mistake_mention_rate": self.mistake_mention_rate,
            "overall_score": self.overall_score,
            "failed_case_ids": self.failed_case_ids,
            "case_results": [asdict(item) for item in self.case_results],
        }


def load_evalset_jsonl(path: Path) -> list[dict]:
    payloads: list[dict] = []
    for idx, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        normalized = line.strip()
        if not normalized:
            continue
        try:
            payload = json.loads(normalized)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid json at line {idx}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError(f"line {idx} is not object json")
        payloads.append(payload)
    if not payloads:
        raise ValueError("empty evalset")
    return payloads


def _score_range(expected: dict) -> tuple[int, int]:
    raw = expected.get("score_range")
    if isinstance(raw, list) and len(raw) == 2:
        return int(raw[0]), int(raw[1])
    return 0, 100


def evaluate_evalset(evalset_path: Path) -> EvalSummary:
    rows = load_evalset_jsonl(evalset_path)
    case_results: list[EvalCaseResult] = []

    quality_match_total = 0
    signal_match_total = 0
    signal_total = 0
    score_in_range_total = 0
    mention_expected_total = 0
    mention_match_total = 0

    for row in rows:
        expected = row.get("expected", {}) if isinstance(row.get("expected"), dict) else {}
        response = str(row.get("response", ""))
        emotions = [str(item) for item in row.get("emotions", []) if str(item).strip()]
        turn = int(row.get("turn", 1) or 1)

        signals = asdict(extract_signals(response, emotions))
        feedback = analyze_response(response, emotions, turn)
        actual_quality = classify_validation_quality(response, emotions).value
        expected_quality = str(expected.get("quality", "")).strip()
        quality_match = actual_quality == expected_quality
        quality_match_total += int(quality_match)

        expected_signals = expected.get("signals", {})
        if not isinstance(expected_signals, dict):
            expected_signals = {}
        signal_match_count = 0
        mismatches: list[str] = []
        for name, value in expected_signals.items():
            actual = signals.get(name)
            if actual is not None and actual == bool(value):
                signal_match_count += 1
            else:
                mismatches.append(f"{name}: expected={bool(value)} actual={actual}")
        signal_total += len(expected_signals)
        signal_match_total += signal_match_count

        low, high = _score_range(expected)
        score_in_range = low <= feedback.overall_score <= high
        score_in_range_total += int(score_in_range)

        mention_expected_count = 0
        mention_match_count = 0
        for item in expected.get("must_mention", []) or []:
            keyword = str(item).strip().lower()
            if not keyword:
                continue
            mention_expected_count += 1
            if any(keyword in mistake.lower() for mistake in feedback.mistakes):
                mention_match_count += 1
        mention_expected_total += mention_expected_count
        mention_match_total += mention_match_count

        case_results.append(
            EvalCaseResult(
                case_id=str(row.get("case_id", "unknown")),
                quality_match=quality_match,
                expected_quality=expected_quality,
                actual_quality=actual_quality,
                signal_match_count=signal_match_count,
                signal_total_count=len(expected_signals),
                score=feedback.overall_score,
                score_in_range=score_in_range,
                mention_expected_count=mention_expected_count,
                mention_match_count=mention_match_count,
                signal_mismatches=mismatches,
            )
        )

    case_count = len(case_results)
    quality_accuracy = quality_match_total / case_count
    signal_accuracy = signal_match_total / signal_total if signal_total else 1.0
    score_range_rate = score_in_range_total / case_count
    mistake_mention_rate = (
        mention_match_total / mention_expected_total if mention_expected_total > 0 else 1.0
    )

    overall_score = (
        0.4 * quality_accuracy
        + 0.3 * signal_accuracy
        + 0.2 * score_range_rate
        + 0.1 * mistake_mention_rate
    )
    failed_case_ids = [
        item.case_id
        for item in case_results
        if not item.quality_match
        or not item.score_in_range
        or item.signal_match_count < item.signal_total_count
    ]
    return EvalSummary(
        case_count=case_count,
        quality_accuracy=round(quality_accuracy, 4),
        signal_accuracy=round(signal_accuracy, 4),
        score_range_rate=round(score_range_rate, 4),
        mistake_mention_rate=round(mistake_mention_rate, 4),
        overall_score=round(overall_score, 4),
        failed_case_ids=failed_case_ids,
        case_results=case_results,
    )
