from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Sequence

from validation_trainer.core.config import settings
from validation_trainer.core.errors import AnalysisFailedError, LlmUnavailableError
from validation_trainer.schemas.conversation import (
    ConversationMessage,
    MessageRole,
    PartnerReplyResponse,
    PartnerRequest,
    ValidationQuality,
)
from validation_trainer.schemas.feedback import AiAnalysis
from validation_trainer.schemas.progress import SessionCompleteRequest, SessionCompleteResponse
from validation_trainer.schemas.scenarios import Difficulty, Scenario, ScenarioCategory
from validation_trainer.services.llm_gateway import LlmGateway
from validation_trainer.services.progress import ProgressLedger, create_session
from validation_trainer.services.streaming import encode_sse
from validation_trainer.services.validation_analyzer import (
    analyze_response,
    classify_validation_quality,
    combine_feedback,
)

logger = logging.getLogger("validation.coach")

MIN_PARTNER_DESCRIPTION = 10
DEFAULT_GENERATED_EMOTIONS = ("worried",)
FALLBACK_PARTNER_REPLY = "I'm having trouble responding right now."
ANALYSIS_CONTEXT_MESSAGES = 4
APPRECIATION_CUES = ("yes", "exactly", "that's", "thank")

PARTNER_TEMPERATURE = 0.7
PARTNER_PRESENCE_PENALTY = 0.2
SCENARIO_TEMPERATURE = 0.7
ANALYSIS_TEMPERATURE = 0.3

QUALITY_GUIDANCE = {
    ValidationQuality.EXCELLENT: (
        "Your partner just validated you very well: they named your emotions, "
        "explained why they make sense and used validating phrases.\n"
        "- Feel genuinely heard and open up with deeper feelings or details\n"
        "- Show relief or appreciation without overdoing it"
    ),
    ValidationQuality.GOOD: (
        "Your partner validated you reasonably well but missed some nuance.\n"
        "- Feel somewhat heard and keep sharing, a little less vulnerably\n"
        "- Give them a chance to do better"
    ),
    ValidationQuality.POOR: (
        "Your partner's reply was generic and did not name or justify your emotions.\n"
        "- Feel slightly unheard and be less open\n"
        "- Repeat your concern or give subtle cues that you need more"
    ),
    ValidationQuality.INVALIDATING: (
        "Your partner dismissed your feelings or jumped straight to fixing.\n"
        "- Feel frustrated or shut down\n"
        "- Say so plainly, for example \"I don't need you to fix it\""
    ),
}

Sleep = Callable[[float], Awaitable[None]]


def _gateway(gateway: LlmGateway | None) -> LlmGateway:
    return gateway if gateway is not None else LlmGateway.from_settings()


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _text(value, default: str = "") -> str:
    return value.strip() if isinstance(value, str) and value.strip() else default


async def generate_scenario(
    partner_description: str, gateway: LlmGateway | None = None
) -> Scenario:
    description = partner_description.strip()
    if len(description) < MIN_PARTNER_DESCRIPTION:
        raise ValueError(
            f"partner description must be at least {MIN_PARTNER_DESCRIPTION} characters"
        )

    system_prompt = (
        "You create realistic, emotionally charged scenarios for practicing validation. "
        "Reply with a JSON object containing title, description, partnerOpening, "
        "emotions (a list), difficulty (easy, medium or hard) and idealResponse."
    )
    user_prompt = (
        "Create a validation practice scenario for this partner:\n"
        f"{description}"
    )
    result = await _gateway(gateway).complete_json(
        [{"role": "system", "content": system_prompt}, {"role": "user", "content": user_prompt}],
        temperature=SCENARIO_TEMPERATURE,
    )

    emotions = _string_list(result.get("emotions"))[:6] or list(DEFAULT_GENERATED_EMOTIONS)
    difficulty = result.get("difficulty")
    if difficulty not in {item.value for item in Difficulty}:
        difficulty = Difficulty.MEDIUM

    return Scenario(
        id=f"generated-{int(time.time() * 1000)}",
        category=ScenarioCategory.GENERATED,
        title=_text(result.get("title"), "Generated Scenario")[:120],
        description=_text(result.get("description")),
        partner_opening=_text(result.get("partnerOpening")),
        emotions=tuple(emotion[:40] for emotion in emotions),
        difficulty=Difficulty(difficulty),
        ideal_response=_text(result.get("idealResponse")),
    )


def _has_received_good_validation(history: Sequence[ConversationMessage]) -> bool:
    return any(
        index > 0
        and message.role == MessageRole.PARTNER
        and any(cue in message.content.lower() for cue in APPRECIATION_CUES)
        for index, message in enumerate(history)
    )


def build_partner_messages(
    request: PartnerRequest,
) -> tuple[list[dict], ValidationQuality | None]:
    """Chat messages for the partner persona plus the quality that steered them.

    Quality is only judged once the conversation is past its first exchange.
    """
    scenario = request.scenario
    history = request.conversation_history
    emotions = ", ".join(scenario.emotions)
    quality: ValidationQuality | None = None

    if not history and not request.user_response:
        guidance = (
            "This is the very first message and you are starting the conversation.\n"
            f"- Share your concern in 1-2 sentences, feeling {emotions}\n"
            f"- Use this opening as inspiration: \"{scenario.partner_opening}\""
        )
    elif not history:
        guidance = (
            f"This is the first exchange. Your partner said: \"{request.user_response}\"\n"
            "- Keep sharing your concern naturally based on what they said"
        )
    else:
        quality = classify_validation_quality(request.user_response, scenario.emotions)
        guidance = QUALITY_GUIDANCE[quality]

    if request.partner_description:
        persona = (
            "PARTNER DESCRIPTION:\n"
            f"{request.partner_description}\n"
            "Embody this person authentically."
        )
    else:
        persona = (
            "You are someone's partner. You're capable and usually grounded, "
            "but right now you need to feel heard."
        )

    stage = "the first exchange" if not history else (
        "early in the conversation" if len(history) <= 2 else "later in the conversation"
    )
    validated = (
        "You've received some good validation earlier."
        if _has_received_good_validation(history)
        else "You haven't felt fully validated yet."
    )
    system_prompt = (
        f"{persona}\n\n"
        f"SCENARIO: {scenario.title}\n{scenario.description}\n"
        f"Your current emotions: {emotions}\n\n"
        f"{guidance}\n\n"
        f"This is {stage} ({len(history)} messages so far). {validated}\n"
        "Reply in 1-3 conversational sentences. Never mention validation or practice."
    )

    messages: list[dict] = [{"role": "system", "content": system_prompt}]
    messages.extend(
        {
            "role": "assistant" if message.role == MessageRole.PARTNER else "user",
            "content": message.content,
        }
        for message in history
    )
    if request.user_response:
        messages.append({"role": "user", "content": request.user_response})
    return messages, quality


async def stream_partner_events(
    request: PartnerRequest, gateway: LlmGateway | None = None
) -> AsyncIterator[bytes]:
    """Relay the partner reply as SSE payloads: chunks, then one done or error event."""
    messages, quality = build_partner_messages(request)
    parts: list[str] = []
    try:
        async for delta in _gateway(gateway).stream_chat(
            messages,
            temperature=PARTNER_TEMPERATURE,
            presence_penalty=PARTNER_PRESENCE_PENALTY,
        ):
            parts.append(delta)
            yield encode_sse({"chunk": delta, "done": False})
    except LlmUnavailableError as exc:
        logger.warning("partner stream failed after %s chunks: %s", len(parts), exc)
        yield encode_sse({"error": "Streaming failed", "message": str(exc)})
        return

    yield encode_sse(
        {
            "chunk": "",
            "done": True,
            "fullResponse": "".join(parts).strip(),
            "validationQuality": (quality or ValidationQuality.POOR).value,
        }
    )


async def generate_partner_reply(
    request: PartnerRequest, gateway: LlmGateway | None = None
) -> PartnerReplyResponse:
    messages, quality = build_partner_messages(request)
    try:
        reply = await _gateway(gateway).complete_chat(
            messages, temperature=PARTNER_TEMPERATURE, max_tokens=300
        )
    except LlmUnavailableError as exc:
        logger.warning("partner reply unavailable, using fallback: %s", exc)
        opening = request.scenario.partner_opening
        if not request.conversation_history and not request.user_response and opening:
            reply = opening
        else:
            reply = FALLBACK_PARTNER_REPLY
    return PartnerReplyResponse(response=reply, validation_quality=quality)


def _speaker(message: ConversationMessage) -> str:
    return "Partner" if message.role == MessageRole.PARTNER else "You"


async def analyze_with_llm(
    response: str,
    scenario: Scenario,
    conversation_context: Sequence[ConversationMessage],
    gateway: LlmGateway | None = None,
) -> AiAnalysis:
    recent = list(conversation_context)[-ANALYSIS_CONTEXT_MESSAGES:]
    history = "\n".join(f"{_speaker(m)}: {m.content}" for m in recent)
    system_prompt = (
        "You are a validation coach. The user practices four steps: listen "
        "empathically, validate the emotion, offer help only with permission, "
        "validate again.\n"
        f"Scenario: {scenario.title}. {scenario.description}\n"
        f"Partner's emotions: {', '.join(scenario.emotions)}\n"
        f"Ideal response example: {scenario.ideal_response}\n"
        + (f"Conversation history:\n{history}\n" if history else "")
        + "Reply with a JSON object containing feedback, score (0-100), positives, "
        "mistakes, suggestions and modelResponse."
    )
    result = await _gateway(gateway).complete_json(
        [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f'Analyze this response: "{response}"'},
        ],
        temperature=ANALYSIS_TEMPERATURE,
    )

    raw_score = result.get("score")
    try:
        score = int(round(float(raw_score)))
    except (TypeError, ValueError):
        score = 0
    return AiAnalysis(
        feedback=_text(result.get("feedback")),
        score=max(0, min(100, score)),
        positives=_string_list(result.get("positives")),
        mistakes=_string_list(result.get("mistakes")),
        suggestions=_string_list(result.get("suggestions")),
        model_response=_text(result.get("modelResponse"), scenario.ideal_response),
    )


async def analyze_with_retry(
    response: str,
    scenario: Scenario,
    conversation_context: Sequence[ConversationMessage],
    gateway: LlmGateway | None = None,
    *,
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
    sleep: Sleep = asyncio.sleep,
) -> AiAnalysis:
    attempts = max_attempts if max_attempts is not None else settings.analysis_max_attempts
    attempts = max(1, attempts)
    backoff = backoff_seconds if backoff_seconds is not None else settings.analysis_backoff_seconds
    gateway = _gateway(gateway)

    last_error: LlmUnavailableError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await analyze_with_llm(response, scenario, conversation_context, gateway)
        except LlmUnavailableError as exc:
            last_error = exc
            logger.warning("analysis attempt %s/%s failed: %s", attempt, attempts, exc)
            if attempt < attempts:
                await sleep(backoff * attempt)
    raise AnalysisFailedError(
        f"analysis failed after {attempts} attempts", attempts=attempts
    ) from last_error


async def finish_session(
    request: SessionCompleteRequest,
    ledger: ProgressLedger,
    gateway: LlmGateway | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> SessionCompleteResponse:
    """Score the last user reply, merge model feedback and record the session."""
    user_messages = [m for m in request.messages if m.role == MessageRole.USER]
    if not user_messages:
        raise ValueError("conversation has no user response to analyze")

    scenario = request.scenario
    last_response = user_messages[-1].content
    local = analyze_response(last_response, scenario.emotions, len(user_messages))
    ai = await analyze_with_retry(
        last_response, scenario, request.messages, gateway, sleep=sleep
    )
    feedback = combine_feedback(local, ai)

    session = create_session(
        scenario.id,
        scenario.title,
        request.messages,
        feedback,
        start_time=request.start_time,
    )
    progress = ledger.complete_session(session)
    return SessionCompleteResponse(
        feedback=feedback, ai_summary=ai.feedback, session=session, progress=progress
    )
