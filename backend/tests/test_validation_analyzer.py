from validation_trainer.schemas.conversation import (
    ConversationMessage,
    MessageRole,
    ValidationQuality,
)
from validation_trainer.schemas.feedback import AiAnalysis, HintKind
from validation_trainer.services.phrase_catalog import (
    InvalidatingLanguage,
    MicroValidations,
    PhraseCatalog,
)
from validation_trainer.services.validation_analyzer import (
    analyze_response,
    classify_validation_quality,
    combine_feedback,
    extract_signals,
    suggest_live_hint,
)


def test_named_and_justified_emotion_scores_high():
    feedback = analyze_response(
        "That sounds really frustrating, especially after a long week. I can see why you're upset.",
        ["frustrated", "overwhelmed"],
        1,
    )
    assert feedback.identified_emotion is True
    assert feedback.offered_justification is True
    assert feedback.used_micro_validations is True
    assert feedback.avoided_invalidating is True
    assert feedback.avoided_premature_fix is True
    assert feedback.overall_score >= 70
    assert "Identified specific emotion" in feedback.positives
    assert "Offered justification for the emotion" in feedback.positives


def test_blame_free_justification_without_but_scores_high():
    text = (
        "That sounds really frustrating, and I don't blame you for feeling that way "
        "because of how he's been acting."
    )
    feedback = analyze_response(text, ["frustrated"], 1)
    signals = extract_signals(text, ["frustrated"])
    assert feedback.identified_emotion is True
    assert feedback.offered_justification is True
    assert signals.used_but is False
    assert signals.used_and_instead is True
    assert feedback.overall_score >= 70


def test_same_input_gives_identical_feedback():
    args = ("I hear you, but you should try sleeping more.", ["exhausted"], 2)
    first = analyze_response(*args)
    second = analyze_response(*args)
    assert first.model_dump_json() == second.model_dump_json()


def test_inflected_try_counts_as_advice():
    assert extract_signals("Maybe trying a walk would help.", ["sad"]).premature_fix is True
    assert extract_signals("Tried yoga?", ["sad"]).premature_fix is True


def test_advice_without_validation_is_flagged():
    feedback = analyze_response("You should just talk to them.", ["frustrated"], 1)
    assert feedback.avoided_premature_fix is False
    assert feedback.offered_justification is False
    assert "Jumped to advice before validating" in feedback.mistakes
    assert 'Used "you" statements that may feel accusatory' in feedback.mistakes
    assert feedback.overall_score == 22


def test_empty_text_is_total_and_scores_the_avoidance_baseline():
    feedback = analyze_response("", ["sad"], 1)
    assert feedback.identified_emotion is False
    assert feedback.offered_justification is False
    assert feedback.used_micro_validations is False
    assert feedback.asked_permission is False
    # Avoidance credits and the energy credit still apply to silence.
    assert feedback.avoided_invalidating is True
    assert feedback.matched_energy is True
    assert feedback.overall_score == 40
    assert feedback.model_response == ""


def test_invalidating_phrase_is_detected_case_insensitively():
    feedback = analyze_response("DON'T WORRY, at least you tried", ["worried"], 2)
    assert feedback.avoided_invalidating is False
    assert "Used invalidating phrases" in feedback.mistakes


def test_invalidating_pattern_catches_reworded_minimizing():
    signals = extract_signals("Honestly it could have been much worse", ["sad"])
    assert signals.used_invalidating_phrase is True


def test_word_boundaries_keep_try_and_can_i_from_false_matches():
    signals = extract_signals("I can imagine this country is exhausting", ["tired"])
    assert signals.premature_fix is False
    assert signals.asked_permission is False
    assert signals.showed_empathy is True


def test_turn_one_suggestions_only_on_first_turn():
    first = analyze_response("I hear you.", ["sad"], 1)
    later = analyze_response("I hear you.", ["sad"], 3)
    ask = 'Try asking: "What happened?" or "Tell me more"'
    assert ask in first.suggestions
    assert ask not in later.suggestions
    assert "Good - focused on listening first, not jumping to solutions" in first.positives
    assert "Good - focused on listening first, not jumping to solutions" not in later.positives


def test_non_positive_turn_is_treated_as_first_turn():
    assert analyze_response("ok", [], 0).suggestions == analyze_response("ok", [], 1).suggestions


def test_score_saturates_at_one_hundred():
    # Every rule fires here, so the raw weights add up past 100.
    feedback = analyze_response(
        "Wow, I understand and I've been there. That sounds exhausting because you "
        "worked so hard! What happened? Would you like my thoughts?",
        ["exhausted"],
        2,
    )
    assert feedback.overall_score == 100
    assert feedback.mistakes == []


def test_classify_validation_quality_levels():
    emotions = ["frustrated"]
    assert (
        classify_validation_quality(
            "That makes sense, I'd be frustrated too because that was unfair.", emotions
        )
        == ValidationQuality.EXCELLENT
    )
    assert (
        classify_validation_quality("You sound frustrated, wow.", emotions)
        == ValidationQuality.GOOD
    )
    assert classify_validation_quality("Okay.", emotions) == ValidationQuality.POOR
    assert (
        classify_validation_quality("Just let it go.", emotions)
        == ValidationQuality.INVALIDATING
    )


def test_custom_catalog_replaces_bundled_phrases():
    catalog = PhraseCatalog(
        invalidating=InvalidatingLanguage(phrases=["meh"], patterns=[]),
        micro_validations=MicroValidations(phrases=["right on"]),
    )
    signals = extract_signals("Right on. Meh.", [], catalog)
    assert signals.used_micro_validations is True
    assert signals.used_invalidating_phrase is True

    bundled = extract_signals("Right on. Meh.", [])
    assert bundled.used_invalidating_phrase is False


def test_combine_feedback_weights_model_score():
    local = analyze_response("You should just talk to them.", ["frustrated"], 1)
    ai = AiAnalysis(
        feedback="Needs work",
        score=60,
        positives=["Kept it short"],
        mistakes=["Skipped validation"],
        suggestions=["Name the feeling"],
        model_response="That sounds so frustrating.",
    )
    combined = combine_feedback(local, ai)
    assert combined.overall_score == round(60 * 0.7 + 22 * 0.3)
    assert combined.model_response == "That sounds so frustrating."
    assert combined.positives[-1] == "Kept it short"
    assert combined.mistakes[: len(local.mistakes)] == local.mistakes
    assert combined.avoided_premature_fix is False


def _msg(role: MessageRole, content: str, ts: int) -> ConversationMessage:
    return ConversationMessage(role=role, content=content, timestamp=ts)


def test_live_hint_warns_against_early_advice():
    hint = suggest_live_hint([_msg(MessageRole.PARTNER, "Rough day.", 1)], "You should rest")
    assert hint is not None
    assert hint.kind == HintKind.WARNING


def test_live_hint_flags_but_in_last_reply():
    messages = [
        _msg(MessageRole.PARTNER, "Rough day.", 1),
        _msg(MessageRole.USER, "I get it but you'll be okay", 2),
    ]
    hint = suggest_live_hint(messages)
    assert hint is not None
    assert '"and"' in hint.text


def test_live_hint_is_none_without_any_text():
    assert suggest_live_hint([]) is None
