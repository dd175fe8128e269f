import asyncio
import json
from datetime import date

import httpx

from validation_trainer.api.deps import get_llm_gateway, get_progress_ledger
from validation_trainer.client.api_client import TrainerApiClient
from validation_trainer.client.practice import PracticeConversation, SessionState
from validation_trainer.core.notifications import NotificationCenter, NotificationKind
from validation_trainer.main import create_app
from validation_trainer.schemas.conversation import MessageRole
from validation_trainer.services.progress import ProgressLedger
from validation_trainer.services.scenario_catalog import get_scenario
from validation_trainer.services.storage import MemoryStore

BASE_URL = "http://trainer.test"


class ScriptedPartner:
    configured = True

    async def stream_chat(self, messages, *, temperature=None, presence_penalty=None):
        for delta in ("Yeah. ", "It really ", "is a lot."):
            yield delta

    async def complete_json(self, messages, *, temperature=None):
        return {"feedback": "Warm and specific.", "score": 84, "modelResponse": "That sounds exhausting."}


def _asgi_client() -> TrainerApiClient:
    app = create_app()
    gateway = ScriptedPartner()
    ledger = ProgressLedger(MemoryStore(), today=lambda: date(2024, 5, 10))
    app.dependency_overrides[get_llm_gateway] = lambda: gateway
    app.dependency_overrides[get_progress_ledger] = lambda: ledger
    return TrainerApiClient(BASE_URL, transport=httpx.ASGITransport(app=app))


def _mock_client(routes: dict[str, httpx.Response]) -> TrainerApiClient:
    def handler(request: httpx.Request) -> httpx.Response:
        response = routes.get(request.url.path)
        if response is None:
            return httpx.Response(404, json={"error_code": "NOT_FOUND", "message": "missing", "request_id": "r"})
        return response

    return TrainerApiClient(BASE_URL, transport=httpx.MockTransport(handler))


def _sse(*payloads: dict) -> httpx.Response:
    body = "".join(f"data: {json.dumps(p)}\n\n" for p in payloads)
    return httpx.Response(
        200, content=body.encode("utf-8"), headers={"content-type": "text/event-stream"}
    )


def _error(status: int, code: str, message: str) -> httpx.Response:
    return httpx.Response(
        status, json={"error_code": code, "message": message, "request_id": "req-1"}
    )


def _kinds(center: NotificationCenter) -> list[NotificationKind]:
    return [n.kind for n in center.snapshot()]


def test_full_conversation_against_the_api():
    notices = NotificationCenter()
    spoken: list[str] = []

    async def run():
        async with _asgi_client() as api:
            conversation = PracticeConversation(
                api, get_scenario("stress-01"), notices, narrator=spoken.append
            )
            assert await conversation.open() is True
            reply = await conversation.respond("  That sounds exhausting, of course you're drained.  ")
            result = await conversation.finish()
            progress = await api.get_progress()
            return conversation, reply, result, progress

    conversation, reply, result, progress = asyncio.run(run())

    assert [m.role for m in conversation.messages] == [
        MessageRole.PARTNER,
        MessageRole.USER,
        MessageRole.PARTNER,
    ]
    assert conversation.messages[0].content == "Yeah. It really is a lot."
    assert conversation.messages[1].content == "That sounds exhausting, of course you're drained."
    assert reply is not None and reply.content == "Yeah. It really is a lot."
    assert conversation.last_quality in {"excellent", "good", "poor", "invalidating"}
    assert spoken == ["Yeah.", "It really is a lot."] * 2

    assert result is not None
    assert result.ai_summary == "Warm and specific."
    assert result.progress.total_sessions == 1
    assert conversation.state == SessionState.REVIEWING
    assert progress is not None and progress.category_progress == {"stress": 1}
    assert _kinds(notices) == [NotificationKind.SUCCESS, NotificationKind.SUCCESS]


def test_failed_opening_clears_conversation_and_notifies():
    notices = NotificationCenter()
    api = _mock_client({"/api/v1/partner/stream": _sse({"chunk": "Hal", "done": False})})

    async def run():
        async with api:
            conversation = PracticeConversation(api, get_scenario("stress-01"), notices)
            return conversation, await conversation.open()

    conversation, opened = asyncio.run(run())

    assert opened is False
    assert conversation.messages == []
    assert notices.snapshot()[0].message == "Failed to start conversation. Please try again."


def test_stream_failure_falls_back_to_single_reply():
    notices = NotificationCenter()
    spoken: list[str] = []
    api = _mock_client(
        {
            "/api/v1/partner/stream": _error(502, "UPSTREAM_ERROR", "LLM_API_KEY is not configured"),
            "/api/v1/partner": httpx.Response(
                200, json={"response": "Fine, whatever.", "validationQuality": "invalidating"}
            ),
        }
    )

    async def run():
        async with api:
            conversation = PracticeConversation(
                api, get_scenario("stress-01"), notices, narrator=spoken.append
            )
            reply = await conversation.respond("Just let it go.")
            return conversation, reply

    conversation, reply = asyncio.run(run())

    assert reply is not None and reply.content == "Fine, whatever."
    assert [m.role for m in conversation.messages] == [MessageRole.USER, MessageRole.PARTNER]
    assert conversation.last_quality == "invalidating"
    assert spoken == ["Fine, whatever."]
    assert notices.snapshot() == []


def test_stream_and_fallback_failure_notifies_once():
    notices = NotificationCenter()
    api = _mock_client(
        {
            "/api/v1/partner/stream": _error(502, "UPSTREAM_ERROR", "down"),
            "/api/v1/partner": _error(503, "UPSTREAM_ERROR", "down"),
        }
    )

    async def run():
        async with api:
            conversation = PracticeConversation(api, get_scenario("stress-01"), notices)
            return conversation, await conversation.respond("I hear you.")

    conversation, reply = asyncio.run(run())

    assert reply is None
    assert [m.role for m in conversation.messages] == [MessageRole.USER]
    assert [n.message for n in notices.snapshot()] == [
        "Failed to get partner response. Please try again."
    ]


def test_finish_without_replies_only_warns():
    notices = NotificationCenter()
    api = _mock_client({})

    async def run():
        async with api:
            conversation = PracticeConversation(api, get_scenario("stress-01"), notices)
            return conversation, await conversation.finish()

    conversation, result = asyncio.run(run())

    assert result is None
    assert conversation.state == SessionState.IDLE
    assert _kinds(notices) == [NotificationKind.WARNING]


def test_finish_failure_still_moves_to_review():
    notices = NotificationCenter()
    api = _mock_client(
        {
            "/api/v1/partner": httpx.Response(200, json={"response": "Okay."}),
            "/api/v1/sessions/complete": _error(
                502, "UPSTREAM_ERROR", "analysis failed after 3 attempts"
            ),
        }
    )

    async def run():
        async with api:
            conversation = PracticeConversation(api, get_scenario("stress-01"), notices)
            await conversation.respond("That sounds hard.")
            return conversation, await conversation.finish()

    conversation, result = asyncio.run(run())

    assert result is None
    assert conversation.state == SessionState.REVIEWING
    assert notices.snapshot()[-1].message == (
        "Failed to analyze session: analysis failed after 3 attempts"
    )


def test_progress_is_none_before_any_session():
    api = _mock_client({})

    async def run():
        async with api:
            return await api.get_progress()

    assert asyncio.run(run()) is None
