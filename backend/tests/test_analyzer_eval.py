import json
from pathlib import Path

import pytest

from validation_trainer.services.analyzer_eval import evaluate_evalset, load_evalset_jsonl

EVALSET_PATH = Path(__file__).resolve().parents[2] / "evals" / "validation_evalset_v0.1.jsonl"


def test_analyzer_evalset_runner_returns_valid_summary():
    summary = evaluate_evalset(EVALSET_PATH)
    assert summary.case_count >= 10
    assert 0.0 <= summary.quality_accuracy <= 1.0
    assert 0.0 <= summary.signal_accuracy <= 1.0
    assert 0.0 <= summary.score_range_rate <= 1.0
    assert 0.0 <= summary.mistake_mention_rate <= 1.0
    assert 0.0 <= summary.overall_score <= 1.0
    assert len(summary.case_results) == summary.case_count


def test_analyzer_evalset_runner_has_reasonable_regression_floor():
    summary = evaluate_evalset(EVALSET_PATH)
    assert summary.quality_accuracy >= 0.8
    assert summary.overall_score >= 0.85


def test_mismatches_are_reported_per_case(tmp_path):
    rows = [
        {
            "case_id": "advice",
            "response": "You should just talk to them.",
            "emotions": ["frustrated"],
            "turn": 1,
            "expected": {
                "quality": "excellent",
                "signals": {"premature_fix": True, "identified_emotion": True},
                "score_range": [0, 100],
                "must_mention": ["jumped to advice", "never mentioned"],
            },
        },
        {
            "case_id": "quiet",
            "response": "",
            "emotions": ["sad"],
            "expected": {"quality": "poor", "score_range": [40, 40]},
        },
    ]
    path = tmp_path / "evalset.jsonl"
    path.write_text("\n".join(json.dumps(row) for row in rows) + "\n\n", encoding="utf-8")

    summary = evaluate_evalset(path)

    assert summary.case_count == 2
    assert summary.failed_case_ids == ["advice"]
    assert summary.quality_accuracy == 0.5
    assert summary.signal_accuracy == 0.5
    assert summary.mistake_mention_rate == 0.5
    advice = summary.case_results[0]
    assert advice.actual_quality == "invalidating"
    assert advice.signal_mismatches == ["identified_emotion: expected=True actual=False"]
    assert summary.to_dict()["case_results"][1]["score"] == 40


def test_load_evalset_rejects_bad_lines(tmp_path):
    empty = tmp_path / "empty.jsonl"
    empty.write_text("\n", encoding="utf-8")
    with pytest.raises(ValueError, match="empty evalset"):
        load_evalset_jsonl(empty)

    broken = tmp_path / "broken.jsonl"
    broken.write_text('{"case_id": "ok"}\n[1, 2]\n', encoding="utf-8")
    with pytest.raises(ValueError, match="line 2"):
        load_evalset_jsonl(broken)
