from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Sequence

from validation_trainer.schemas.conversation import (
    ConversationMessage,
    MessageRole,
    ValidationQuality,
)
from validation_trainer.schemas.feedback import (
    AiAnalysis,
    HintKind,
    LiveHint,
    ValidationFeedback,
)
from validation_trainer.services.phrase_catalog import PhraseCatalog, get_default_catalog

EMOTION_VOCABULARY = re.compile(
    r"\b(frustrated|frustrating|worried|worrying|angry|sad|excited|exciting|proud"
    r"|overwhelmed|overwhelming|exhausted|exhausting|hurt|hurtful|confused|confusing"
    r"|anxious|trapped|lonely|guilty|embarrassed|embarrassing|relieved|conflicted"
    r"|torn|inadequate|jealous|defensive|emotional|hopeful|isolated)\b",
    re.IGNORECASE,
)


def _patterns(*items: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(item, re.IGNORECASE) for item in items)


JUSTIFICATION_PATTERNS = _patterns(
    r"because",
    r"especially",
    r"given that",
    r"it makes sense",
    r"i don't blame you",
    r"i can see why",
    r"that would be",
    r"i'd feel",
    r"anyone would",
    r"of course you",
    r"no wonder",
    r"i can hear",
    r"i get why",
    r"you have every right",
)
LISTENING_QUESTION_PATTERNS = _patterns(
    r"what happened",
    r"tell me more",
    r"how are you feeling",
    r"what's going on",
    r"what's up",
    r"what do you mean",
    r"can you explain",
    r"help me understand",
)
ADVICE_PATTERNS = _patterns(
    r"you should",
    r"why don't you",
    r"have you tried",
    r"here's what",
    r"you need to",
    r"\btr(?:y|ies|ied|ying)\b",
)
PERMISSION_PATTERNS = _patterns(
    r"how can i help",
    r"would you like",
    r"\bmay i\b",
    r"\bcan i\b",
    r"what would",
)
EMPATHY_PATTERNS = _patterns(
    r"i can imagine",
    r"i can only imagine",
    r"i can't imagine",
    r"i understand",
    r"i hear you",
    r"\bi see\b",
    r"i get it",
    r"i feel",
)
RELATING_PATTERNS = _patterns(
    r"i've felt",
    r"i've been there",
    r"i remember",
    r"i had a similar",
    r"i can relate",
    r"that reminds me",
)
I_STATEMENT = re.compile(r"\b(i feel|i think|i notice|i see|i understand|i'm)", re.IGNORECASE)
YOU_STATEMENT = re.compile(
    r"\b(you always|you never|you should|you need|you're wrong)", re.IGNORECASE
)
ABSOLUTES = re.compile(r"\b(always|never|constantly)\b", re.IGNORECASE)
BUT_WORDS = re.compile(r"\b(but|however)\b", re.IGNORECASE)
AND_WORD = re.compile(r"\band\b", re.IGNORECASE)
POSITIVE_ENERGY = re.compile(
    r"\b(amazing|great|fantastic|awesome|wonderful|exciting|proud)\b", re.IGNORECASE
)

# Energy matching is not measured yet; every response gets the credit.
ENERGY_MATCH_DEFAULT = True


def _has_any(text: str, patterns: tuple[re.Pattern[str], ...]) -> bool:
    return any(pattern.search(text) for pattern in patterns)


@dataclass(frozen=True, slots=True)
class ResponseSignals:
    identified_emotion: bool
    offered_justification: bool
    asked_listening_question: bool
    used_micro_validations: bool
    used_invalidating_phrase: bool
    premature_fix: bool
    asked_permission: bool
    used_i_statements: bool
    used_you_statements: bool
    used_absolutes: bool
    used_but: bool
    used_and_instead: bool
    showed_empathy: bool
    related_to_experience: bool
    matched_energy: bool


def extract_signals(
    response: str,
    emotions: Sequence[str],
    catalog: PhraseCatalog | None = None,
) -> ResponseSignals:
    if catalog is None:
        catalog = get_default_catalog()
    lowered = response.lower()

    identified_emotion = any(
        emotion.strip() and emotion.lower() in lowered for emotion in emotions
    ) or bool(EMOTION_VOCABULARY.search(response))
    offered_justification = _has_any(response, JUSTIFICATION_PATTERNS)
    advice_given = _has_any(response, ADVICE_PATTERNS)

    i_statements = bool(I_STATEMENT.search(response))
    you_statements = bool(YOU_STATEMENT.search(response))
    used_but = bool(BUT_WORDS.search(response))

    energy_cue = "!" in response or bool(POSITIVE_ENERGY.search(response))

    return ResponseSignals(
        identified_emotion=identified_emotion,
        offered_justification=offered_justification,
        asked_listening_question=_has_any(response, LISTENING_QUESTION_PATTERNS),
        used_micro_validations=catalog.has_micro_validation(response),
        used_invalidating_phrase=catalog.has_invalidating(response),
        premature_fix=advice_given and not offered_justification,
        asked_permission=_has_any(response, PERMISSION_PATTERNS),
        used_i_statements=i_statements and not you_statements,
        used_you_statements=you_statements,
        used_absolutes=bool(ABSOLUTES.search(response)),
        used_but=used_but,
        used_and_instead=bool(AND_WORD.search(response)) and not used_but,
        showed_empathy=_has_any(response, EMPATHY_PATTERNS),
        related_to_experience=_has_any(response, RELATING_PATTERNS),
        matched_energy=energy_cue or ENERGY_MATCH_DEFAULT,
    )


@dataclass(frozen=True, slots=True)
class ScoringRule:
    name: str
    weight: int
    applies: Callable[[ResponseSignals], bool]


# The permission rule also pays out whenever no premature fix happened, so it
# overlaps the rule above it. Raw maximum is 105; the total is capped at 100.
SCORING_RULES: tuple[ScoringRule, ...] = (
    ScoringRule("identified_emotion", 20, lambda s: s.identified_emotion),
    ScoringRule("offered_justification", 20, lambda s: s.offered_justification),
    ScoringRule("used_micro_validations", 12, lambda s: s.used_micro_validations),
    ScoringRule("avoided_invalidating", 15, lambda s: not s.used_invalidating_phrase),
    ScoringRule("avoided_premature_fix", 10, lambda s: not s.premature_fix),
    ScoringRule(
        "permission_or_no_fix", 8, lambda s: s.asked_permission or not s.premature_fix
    ),
    ScoringRule("asked_listening_question", 5, lambda s: s.asked_listening_question),
    ScoringRule("matched_energy", 3, lambda s: s.matched_energy),
    ScoringRule("used_i_statements", 3, lambda s: s.used_i_statements),
    ScoringRule("avoided_absolutes", 2, lambda s: not s.used_absolutes),
    ScoringRule("avoided_but", 2, lambda s: not s.used_but),
    ScoringRule("showed_empathy", 3, lambda s: s.showed_empathy),
    ScoringRule("related_to_experience", 2, lambda s: s.related_to_experience),
)
MAX_SCORE = 100


def score_signals(signals: ResponseSignals) -> int:
    total = sum(rule.weight for rule in SCORING_RULES if rule.applies(signals))
    return max(0, min(MAX_SCORE, total))


@dataclass(frozen=True, slots=True)
class FeedbackRule:
    applies: Callable[[ResponseSignals, int], bool]
    positive: str | None = None
    mistake: str | None = None
    suggestion: str | None = None


FEEDBACK_RULES: tuple[FeedbackRule, ...] = (
    FeedbackRule(
        lambda s, _: s.identified_emotion,
        positive="Identified specific emotion",
    ),
    FeedbackRule(
        lambda s, _: not s.identified_emotion,
        mistake="Didn't identify a specific emotion",
        suggestion='Try naming the emotion: "That sounds frustrating" or "You seem worried"',
    ),
    FeedbackRule(
        lambda s, _: s.offered_justification,
        positive="Offered justification for the emotion",
    ),
    FeedbackRule(
        lambda s, _: not s.offered_justification,
        mistake="Didn't explain why the emotion makes sense",
        suggestion=(
            'Add justification: "That makes sense because..." or '
            '"I don\'t blame you, especially since..."'
        ),
    ),
    FeedbackRule(
        lambda s, _: s.used_micro_validations,
        positive="Used validating phrases",
    ),
    FeedbackRule(
        lambda s, _: not s.used_micro_validations,
        suggestion='Add micro validations: "That makes sense", "I can see that", "Wow"',
    ),
    FeedbackRule(
        lambda s, _: s.used_invalidating_phrase,
        mistake="Used invalidating phrases",
        suggestion='Avoid phrases like "don\'t worry", "it could be worse", "at least"',
    ),
    FeedbackRule(
        lambda s, _: s.premature_fix,
        mistake="Jumped to advice before validating",
        suggestion='Validate first, then ask "How can I help?" before offering solutions',
    ),
    FeedbackRule(
        lambda s, _: s.premature_fix and not s.asked_permission,
        suggestion='Ask permission before giving advice: "Would you like my thoughts?"',
    ),
    FeedbackRule(
        lambda s, _: s.used_you_statements and not s.used_i_statements,
        mistake='Used "you" statements that may feel accusatory',
        suggestion='Use "I" statements: "I feel like..." instead of "You always..."',
    ),
    FeedbackRule(
        lambda s, _: s.used_absolutes,
        mistake='Used absolutes like "always" or "never"',
        suggestion='Replace absolutes with softer terms: "often" or "sometimes"',
    ),
    FeedbackRule(
        lambda s, _: s.used_but,
        mistake='Used "but" which can negate your validation',
        suggestion='Try "and" instead: "I understand AND here\'s what I\'m thinking..."',
    ),
    FeedbackRule(
        lambda s, _: s.showed_empathy,
        positive="Showed empathy and understanding",
    ),
    FeedbackRule(
        lambda s, _: s.related_to_experience,
        positive="Related to their experience",
    ),
    FeedbackRule(
        lambda s, _: s.asked_listening_question,
        positive="Asked open-ended questions to understand more",
    ),
    FeedbackRule(
        lambda s, turn: not s.asked_listening_question and turn == 1,
        suggestion='Try asking: "What happened?" or "Tell me more"',
    ),
    FeedbackRule(
        lambda s, turn: turn == 1 and not s.premature_fix,
        positive="Good - focused on listening first, not jumping to solutions",
    ),
)


def analyze_response(
    response: str,
    emotions: Sequence[str],
    conversation_turn: int = 1,
    catalog: PhraseCatalog | None = None,
) -> ValidationFeedback:
    """Score one user reply against the four-step validation heuristics.

    Pure and total: any text, including an empty string, yields feedback.
    ``model_response`` is left empty for the caller to fill in.
    """
    turn = conversation_turn if conversation_turn >= 1 else 1
    signals = extract_signals(response, emotions, catalog)

    positives: list[str] = []
    mistakes: list[str] = []
    suggestions: list[str] = []
    for rule in FEEDBACK_RULES:
        if not rule.applies(signals, turn):
            continue
        if rule.positive:
            positives.append(rule.positive)
        if rule.mistake:
            mistakes.append(rule.mistake)
        if rule.suggestion:
            suggestions.append(rule.suggestion)

    return ValidationFeedback(
        identified_emotion=signals.identified_emotion,
        offered_justification=signals.offered_justification,
        used_micro_validations=signals.used_micro_validations,
        avoided_invalidating=not signals.used_invalidating_phrase,
        avoided_premature_fix=not signals.premature_fix,
        asked_permission=signals.asked_permission,
        matched_energy=signals.matched_energy,
        used_i_statements=signals.used_i_statements,
        avoided_absolutes=not signals.used_absolutes,
        overall_score=score_signals(signals),
        positives=positives,
        mistakes=mistakes,
        suggestions=suggestions,
        model_response="",
    )


def classify_validation_quality(
    response: str,
    emotions: Sequence[str],
    catalog: PhraseCatalog | None = None,
) -> ValidationQuality:
    """Coarse label used to steer how the partner persona reacts."""
    signals = extract_signals(response, emotions, catalog)
    if signals.used_invalidating_phrase or signals.premature_fix:
        return ValidationQuality.INVALIDATING
    if (
        signals.identified_emotion
        and signals.offered_justification
        and signals.used_micro_validations
    ):
        return ValidationQuality.EXCELLENT
    if signals.identified_emotion and (
        signals.offered_justification or signals.used_micro_validations
    ):
        return ValidationQuality.GOOD
    return ValidationQuality.POOR


AI_SCORE_WEIGHT = 0.7
LOCAL_SCORE_WEIGHT = 0.3


def combine_feedback(local: ValidationFeedback, ai: AiAnalysis) -> ValidationFeedback:
    """Merge rule-based and model feedback, weighting the model's score 70/30."""
    combined = round(ai.score * AI_SCORE_WEIGHT + local.overall_score * LOCAL_SCORE_WEIGHT)
    return local.model_copy(
        update={
            "model_response": ai.model_response,
            "positives": [*local.positives, *ai.positives],
            "mistakes": [*local.mistakes, *ai.mistakes],
            "suggestions": [*local.suggestions, *ai.suggestions],
            "overall_score": max(0, min(MAX_SCORE, combined)),
        }
    )


OPENING_ADVICE = ("you should", "why don't you")
OPENING_CURIOSITY = ("what", "tell me")
TURN_ONE_ADVICE = re.compile(r"you should|why don't you|have you tried")
INVALIDATING_HINT = re.compile(r"don't worry|you'll be fine|it could be worse|at least")
GOOD_VALIDATION_HINT = re.compile(r"that makes sense|i don't blame you|i can see why|that sounds")


def suggest_live_hint(
    messages: Sequence[ConversationMessage], current_transcript: str = ""
) -> LiveHint | None:
    """In-conversation nudge based on the latest reply or the draft being typed."""
    user_messages = [m for m in messages if m.role == MessageRole.USER]
    turn = len(user_messages)
    last_reply = user_messages[-1].content.lower() if user_messages else ""
    transcript = current_transcript.lower()

    if turn == 0 and transcript:
        if any(item in transcript for item in OPENING_ADVICE):
            return LiveHint(
                kind=HintKind.WARNING,
                text="Remember: Listen first, don't jump to solutions yet",
            )
        if any(item in transcript for item in OPENING_CURIOSITY):
            return LiveHint(
                kind=HintKind.SUCCESS,
                text="Great - asking questions to understand more!",
            )
        return LiveHint(
            kind=HintKind.TIP,
            text="Focus on listening and understanding how they feel",
        )

    if last_reply:
        if " but " in last_reply or "however" in last_reply:
            return LiveHint(
                kind=HintKind.WARNING,
                text='Try "and" instead of "but" - "but" negates what you said before',
            )
        if INVALIDATING_HINT.search(last_reply):
            return LiveHint(
                kind=HintKind.WARNING,
                text="That might feel dismissive. Try validating the emotion instead",
            )
        if turn == 1 and TURN_ONE_ADVICE.search(last_reply):
            return LiveHint(
                kind=HintKind.WARNING,
                text="Consider validating first before giving advice",
            )
        if GOOD_VALIDATION_HINT.search(last_reply):
            return LiveHint(
                kind=HintKind.SUCCESS,
                text="Nice validation! You're acknowledging their feelings",
            )

    if turn == 1:
        return LiveHint(
            kind=HintKind.TIP,
            text="Step 2: Validate the emotion - name it and explain why it makes sense",
        )
    if turn == 2:
        return LiveHint(
            kind=HintKind.TIP,
            text='If offering advice, ask first: "How can I help?" or "Would you like my thoughts?"',
        )
    return None
