from __future__ import annotations

import codecs
import json
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator

from validation_trainer.core.errors import StreamError

logger = logging.getLogger("validation.stream")

DATA_PREFIX = "data: "
EVENT_DELIMITER = "\n\n"
PROVIDER_DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True, slots=True)
class ChunkEvent:
    text: str


@dataclass(frozen=True, slots=True)
class DoneEvent:
    full_response: str
    validation_quality: str | None = None


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    error: str
    message: str | None = None


StreamEvent = ChunkEvent | DoneEvent | ErrorEvent


class SseDecoder:
    """Turns raw byte fragments into ``data:`` payload strings.

    Fragments may split a multi-byte character or an event anywhere; the
    undecoded bytes and the trailing partial event are held until the next
    ``feed``.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, fragment: bytes) -> list[str]:
        self._pending = (self._pending + self._decoder.decode(fragment)).replace("\r\n", "\n")
        blocks = self._pending.split(EVENT_DELIMITER)
        self._pending = blocks.pop()
        return [payload for block in blocks for payload in _data_lines(block)]

    def finish(self) -> list[str]:
        remainder = (self._pending + self._decoder.decode(b"", final=True)).replace("\r\n", "\n")
        self._pending = ""
        return _data_lines(remainder)


def _data_lines(block: str) -> list[str]:
    return [
        line[len(DATA_PREFIX) :]
        for line in block.split("\n")
        if line.startswith(DATA_PREFIX)
    ]


def parse_relay_event(payload: str) -> StreamEvent | None:
    """Parse one relay payload; malformed payloads are logged and dropped."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.warning("skipping malformed stream event: %s", exc)
        return None
    if not isinstance(data, dict):
        logger.warning("skipping non-object stream event")
        return None

    if data.get("error"):
        message = data.get("message")
        return ErrorEvent(
            error=str(data["error"]),
            message=message if isinstance(message, str) else None,
        )
    if data.get("done") is True:
        quality = data.get("validationQuality")
        full_response = data.get("fullResponse")
        return DoneEvent(
            full_response=full_response if isinstance(full_response, str) else "",
            validation_quality=quality if isinstance(quality, str) else None,
        )
    chunk = data.get("chunk")
    if isinstance(chunk, str):
        return ChunkEvent(text=chunk) if chunk else None
    logger.warning("skipping stream event with unknown shape: %s", sorted(data))
    return None


def iter_sse_events(fragments: Iterable[bytes]) -> Iterator[StreamEvent]:
    decoder = SseDecoder()
    for fragment in fragments:
        for payload in decoder.feed(fragment):
            event = parse_relay_event(payload)
            if event is not None:
                yield event
    for payload in decoder.finish():
        event = parse_relay_event(payload)
        if event is not None:
            yield event


async def aiter_sse_data(fragments: AsyncIterable[bytes]) -> AsyncIterator[str]:
    decoder = SseDecoder()
    async for fragment in fragments:
        for payload in decoder.feed(fragment):
            yield payload
    for payload in decoder.finish():
        yield payload


async def aiter_sse_events(fragments: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    async for payload in aiter_sse_data(fragments):
        event = parse_relay_event(payload)
        if event is not None:
            yield event


def encode_sse(payload: dict) -> bytes:
    return f"{DATA_PREFIX}{json.dumps(payload, ensure_ascii=False)}{EVENT_DELIMITER}".encode(
        "utf-8"
    )


SENTENCE_END = re.compile(r"[.!?](\s+|$)")


class SentenceSegmenter:
    """Emits each complete sentence as soon as its terminator arrives."""

    def __init__(self, on_sentence: Callable[[str], None]) -> None:
        self._on_sentence = on_sentence
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        self._buffer += chunk
        emitted: list[str] = []
        while True:
            match = SENTENCE_END.search(self._buffer)
            if match is None:
                break
            sentence = self._buffer[: match.end()].strip()
            self._buffer = self._buffer[match.end() :]
            if sentence:
                self._on_sentence(sentence)
                emitted.append(sentence)
            if not self._buffer:
                break
        return emitted

    def flush(self) -> str | None:
        remainder, self._buffer = self._buffer.strip(), ""
        if not remainder:
            return None
        self._on_sentence(remainder)
        return remainder


@dataclass(slots=True)
class StreamOutcome:
    completed: bool
    text: str
    validation_quality: str | None = None
    error: StreamError | None = None
    chunk_count: int = 0


ChunkCallback = Callable[[str], None]
CompleteCallback = Callable[[str, str | None], None]
ErrorCallback = Callable[[StreamError], None]


class _Relay:
    def __init__(
        self,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
        on_sentence: Callable[[str], None] | None,
    ) -> None:
        self._on_chunk = on_chunk
        self._on_complete = on_complete
        self._on_error = on_error
        self._segmenter = SentenceSegmenter(on_sentence) if on_sentence else None
        self._parts: list[str] = []
        self.outcome: StreamOutcome | None = None

    def handle(self, event: StreamEvent) -> StreamOutcome | None:
        """Process one event; returns the outcome once a terminal callback fired."""
        if isinstance(event, ChunkEvent):
            self._parts.append(event.text)
            self._on_chunk(event.text)
            if self._segmenter is not None:
                self._segmenter.feed(event.text)
            return None
        if isinstance(event, DoneEvent):
            if self._segmenter is not None:
                self._segmenter.flush()
            text = event.full_response or "".join(self._parts)
            outcome = StreamOutcome(
                completed=True,
                text=text,
                validation_quality=event.validation_quality,
                chunk_count=len(self._parts),
            )
            self.outcome = outcome
            self._on_complete(text, event.validation_quality)
            return outcome
        return self.fail(StreamError(event.message or event.error, detail=event.error))

    def fail(self, error: StreamError) -> StreamOutcome:
        logger.warning("stream failed: %s", error)
        outcome = StreamOutcome(
            completed=False,
            text="".join(self._parts),
            error=error,
            chunk_count=len(self._parts),
        )
        self.outcome = outcome
        self._on_error(error)
        return outcome

    def finish_without_done(self) -> StreamOutcome:
        if not self._parts:
            return self.fail(StreamError("stream ended without any data"))
        return self.fail(StreamError("stream ended before completion"))


def relay_stream(
    events: Iterable[StreamEvent],
    on_chunk: ChunkCallback,
    on_complete: CompleteCallback,
    on_error: ErrorCallback,
    on_sentence: Callable[[str], None] | None = None,
) -> StreamOutcome:
    """Drive the callbacks from parsed events; exactly one terminal callback fires."""
    relay = _Relay(on_chunk, on_complete, on_error, on_sentence)
    for event in events:
        outcome = relay.handle(event)
        if outcome is not None:
            return outcome
    return relay.finish_without_done()


async def arelay_stream(
    events: AsyncIterable[StreamEvent],
    on_chunk: ChunkCallback,
    on_complete: CompleteCallback,
    on_error: ErrorCallback,
    on_sentence: Callable[[str], None] | None = None,
) -> StreamOutcome:
    relay = _Relay(on_chunk, on_complete, on_error, on_sentence)
    async for event in events:
        outcome = relay.handle(event)
        if outcome is not None:
            return outcome
    return relay.finish_without_done()


def fail_stream(
    error: StreamError,
    on_error: ErrorCallback,
) -> StreamOutcome:
    """Report a failure that happened before any event could be read."""
    relay = _Relay(lambda _: None, lambda *_: None, on_error, None)
    return relay.fail(error)
