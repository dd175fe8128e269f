import asyncio
import json

from validation_trainer.services.streaming import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    SentenceSegmenter,
    SseDecoder,
    aiter_sse_events,
    arelay_stream,
    encode_sse,
    iter_sse_events,
    parse_relay_event,
    relay_stream,
)


def _frame(payload: dict) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


class _Recorder:
    def __init__(self):
        self.chunks: list[str] = []
        self.completed: list[tuple[str, str | None]] = []
        self.errors: list[Exception] = []
        self.sentences: list[str] = []

    def on_chunk(self, chunk):
        self.chunks.append(chunk)

    def on_complete(self, text, quality):
        self.completed.append((text, quality))

    def on_error(self, error):
        self.errors.append(error)

    def on_sentence(self, sentence):
        self.sentences.append(sentence)


def _relay(fragments, recorder: _Recorder):
    return relay_stream(
        iter_sse_events(fragments),
        recorder.on_chunk,
        recorder.on_complete,
        recorder.on_error,
        recorder.on_sentence,
    )


def test_segmenter_emits_sentences_as_soon_as_they_finish():
    spoken: list[str] = []
    segmenter = SentenceSegmenter(spoken.append)

    assert segmenter.feed("Hello there. How ") == ["Hello there."]
    assert segmenter.pending == "How "
    assert segmenter.feed("are you?") == ["How are you?"]
    assert spoken == ["Hello there.", "How are you?"]
    assert segmenter.flush() is None


def test_segmenter_keeps_inner_punctuation_and_flushes_remainder():
    spoken: list[str] = []
    segmenter = SentenceSegmenter(spoken.append)

    segmenter.feed("It cost 3.50 today")
    assert spoken == []
    assert segmenter.flush() == "It cost 3.50 today"
    assert spoken == ["It cost 3.50 today"]


def test_decoder_handles_multibyte_character_split_across_fragments():
    raw = _frame({"chunk": "café ☕"})
    split_at = raw.index("é".encode("utf-8")) + 1
    decoder = SseDecoder()

    assert decoder.feed(raw[:split_at]) == []
    payloads = decoder.feed(raw[split_at:])
    assert [json.loads(p)["chunk"] for p in payloads] == ["café ☕"]


def test_decoder_handles_event_split_and_crlf_delimiters():
    decoder = SseDecoder()
    assert decoder.feed(b'data: {"chunk": "a"}\r\n') == []
    assert decoder.feed(b'\r\ndata: {"chunk"') == ['{"chunk": "a"}']
    assert decoder.feed(b': "b"}') == []
    assert decoder.finish() == ['{"chunk": "b"}']


def test_parse_relay_event_shapes():
    assert parse_relay_event('{"chunk": "hi", "done": false}') == ChunkEvent("hi")
    assert parse_relay_event('{"chunk": "", "done": false}') is None
    assert parse_relay_event(
        '{"chunk": "", "done": true, "fullResponse": "hi", "validationQuality": "good"}'
    ) == DoneEvent("hi", "good")
    assert parse_relay_event('{"error": "Streaming failed", "message": "boom"}') == ErrorEvent(
        "Streaming failed", "boom"
    )
    assert parse_relay_event("not json") is None
    assert parse_relay_event("[1, 2]") is None


def test_relay_completes_once_and_skips_malformed_events():
    recorder = _Recorder()
    fragments = [
        _frame({"chunk": "Hello there. ", "done": False}),
        b"data: {broken\n\n",
        _frame({"chunk": "How are you?", "done": False}),
        _frame(
            {
                "chunk": "",
                "done": True,
                "fullResponse": "Hello there. How are you?",
                "validationQuality": "excellent",
            }
        ),
        _frame({"chunk": "ignored", "done": False}),
    ]

    outcome = _relay(fragments, recorder)

    assert outcome.completed is True
    assert recorder.chunks == ["Hello there. ", "How are you?"]
    assert recorder.completed == [("Hello there. How are you?", "excellent")]
    assert recorder.errors == []
    assert recorder.sentences == ["Hello there.", "How are you?"]
    assert outcome.chunk_count == 2


def test_relay_flushes_trailing_fragment_as_final_sentence():
    recorder = _Recorder()
    fragments = [
        _frame({"chunk": "Fine. Just tired", "done": False}),
        _frame({"chunk": "", "done": True, "fullResponse": ""}),
    ]

    outcome = _relay(fragments, recorder)

    assert outcome.text == "Fine. Just tired"
    assert recorder.completed == [("Fine. Just tired", None)]
    assert recorder.sentences == ["Fine.", "Just tired"]


def test_relay_reports_stream_without_any_data_as_error():
    recorder = _Recorder()

    outcome = _relay([], recorder)

    assert outcome.completed is False
    assert recorder.completed == []
    assert len(recorder.errors) == 1
    assert "without any data" in str(recorder.errors[0])


def test_relay_reports_truncated_stream_as_error():
    recorder = _Recorder()

    outcome = _relay([_frame({"chunk": "Half a ", "done": False})], recorder)

    assert outcome.completed is False
    assert outcome.text == "Half a "
    assert recorder.completed == []
    assert len(recorder.errors) == 1
    assert recorder.sentences == []


def test_relay_stops_at_error_event():
    recorder = _Recorder()
    fragments = [
        _frame({"chunk": "Hi", "done": False}),
        _frame({"error": "Streaming failed", "message": "upstream closed"}),
        _frame({"chunk": "", "done": True, "fullResponse": "Hi"}),
    ]

    outcome = _relay(fragments, recorder)

    assert outcome.completed is False
    assert recorder.completed == []
    assert [str(e) for e in recorder.errors] == ["upstream closed"]
    assert recorder.errors[0].detail == "Streaming failed"


def test_encoded_events_parse_back_in_order():
    fragments = [
        encode_sse({"chunk": "Ça va? ", "done": False}),
        encode_sse({"chunk": "", "done": True, "fullResponse": "Ça va?"}),
    ]
    joined = b"".join(fragments)
    halves = [joined[:7], joined[7:]]

    events = list(iter_sse_events(halves))

    assert events == [ChunkEvent("Ça va? "), DoneEvent("Ça va?", None)]


def test_async_relay_matches_sync_behaviour():
    async def fragments():
        yield _frame({"chunk": "One. ", "done": False})
        yield _frame({"chunk": "", "done": True, "fullResponse": "One."})

    recorder = _Recorder()

    outcome = asyncio.run(
        arelay_stream(
            aiter_sse_events(fragments()),
            recorder.on_chunk,
            recorder.on_complete,
            recorder.on_error,
            recorder.on_sentence,
        )
    )

    assert outcome.completed is True
    assert recorder.completed == [("One.", None)]
    assert recorder.sentences == ["One."]
