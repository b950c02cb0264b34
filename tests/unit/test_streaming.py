"""
Tests for stream normalization.
"""

import json

import pytest

from llm_gateway.adapters import AnthropicAdapter, GoogleAdapter, OpenAIAdapter
from llm_gateway.core.streaming import StreamNormalizer
from llm_gateway.models.events import Complete, ContentDelta, ErrorEvent, ToolCallFragment, WarningEvent
from llm_gateway.models.request import ToolCall

from conftest import openai_chunk, sse, stream_body


def run(adapter, *chunks, **kwargs):
    normalizer = StreamNormalizer(adapter, **kwargs)
    events = []
    for chunk in chunks:
        events.extend(normalizer.feed(chunk))
    events.extend(normalizer.finish())
    return normalizer, events


def contents(events):
    return [e.content for e in events if isinstance(e, ContentDelta)]


# Multi-byte text, comments, SSE fields, a tool call and a unit split over lines
OPENAI_BODY = (
    b": keep-alive\n\n"
    b"event: message\n"
    + sse(openai_chunk("Héllo"), done=False)
    + "data: {\"choices\": [{\"delta\": {\"content\": \" wörld \U0001F30D\"}}]}\r\n\r\n".encode("utf-8")
    + b"data: {\"choices\": [{\"delta\":\n"
    + b"{\"content\": \"!\"}}]}\n\n"
    + sse(openai_chunk(tool_calls=[
        {"index": 0, "id": "call_1", "function": {"name": "webSearch", "arguments": ""}},
    ]), done=False)
    + sse(openai_chunk(tool_calls=[{"index": 0, "function": {"arguments": "{\"query\":"}}]), done=False)
    + sse(openai_chunk(tool_calls=[{"index": 0, "function": {"arguments": " \"x\"}"}}]))
)


class TestStreamNormalizer:
    """Test the OpenAI-style event stream."""

    def test_single_chunk(self):
        normalizer, events = run(OpenAIAdapter(), OPENAI_BODY)

        assert contents(events) == ["Héllo", " wörld 🌍", "!"]
        assert isinstance(events[-1], Complete)
        assert events[-1].full_message == "Héllo wörld 🌍!"
        assert normalizer.tool_calls == [
            ToolCall(id="call_1", name="webSearch", arguments="{\"query\": \"x\"}"),
        ]
        assert [e.arguments for e in events if isinstance(e, ToolCallFragment)] == [
            "", "{\"query\":", " \"x\"}",
        ]
        assert not any(isinstance(e, WarningEvent) for e in events)

    def test_every_byte_boundary(self):
        """Splitting the body at any byte gives the same event sequence."""
        _, expected = run(OpenAIAdapter(), OPENAI_BODY)

        for i in range(1, len(OPENAI_BODY)):
            _, events = run(OpenAIAdapter(), OPENAI_BODY[:i], OPENAI_BODY[i:])
            assert events == expected, f"split at byte {i}"

    def test_byte_by_byte(self):
        _, expected = run(OpenAIAdapter(), OPENAI_BODY)
        chunks = [OPENAI_BODY[i:i + 1] for i in range(len(OPENAI_BODY))]
        _, events = run(OpenAIAdapter(), *chunks)
        assert events == expected

    def test_nothing_after_sentinel(self):
        """Exactly one complete, and no deltas after [DONE]."""
        body = sse(openai_chunk("a")) + sse(openai_chunk("late"))
        normalizer = StreamNormalizer(OpenAIAdapter())

        events = normalizer.feed(body)
        events += normalizer.feed(sse(openai_chunk("later")))
        events += normalizer.finish()

        assert contents(events) == ["a"]
        assert sum(isinstance(e, Complete) for e in events) == 1
        assert isinstance(events[-1], Complete)
        assert normalizer.done

    def test_data_prefix_without_space(self):
        _, events = run(OpenAIAdapter(), b'data:{"choices":[{"delta":{"content":"x"}}]}\n\ndata:[DONE]\n\n')
        assert contents(events) == ["x"]
        assert events[-1].full_message == "x"

    def test_malformed_unit_skipped(self):
        """A unit that can never parse is reported and the stream goes on."""
        body = b"data: not-json\n\n" + sse(openai_chunk("ok"))
        _, events = run(OpenAIAdapter(), body)

        warnings = [e for e in events if isinstance(e, WarningEvent)]
        assert len(warnings) == 1
        assert warnings[0].code == "stream_parse_error"
        assert contents(events) == ["ok"]
        assert isinstance(events[-1], Complete)

    def test_truncated_unit_does_not_swallow_later_units(self):
        """A unit cut short is dropped once the next complete unit arrives."""
        body = (
            b'data: {"choices": [{"delta": {"content": "trunc\n\n'
            + sse(openai_chunk("a"), openai_chunk("b"))
        )
        _, expected = run(OpenAIAdapter(), body)

        warnings = [e for e in expected if isinstance(e, WarningEvent)]
        assert len(warnings) == 1
        assert warnings[0].code == "stream_parse_error"
        assert contents(expected) == ["a", "b"]
        assert expected[-1] == Complete(full_message="ab")

        for i in range(1, len(body)):
            _, events = run(OpenAIAdapter(), body[:i], body[i:])
            assert events == expected, f"split at byte {i}"

    def test_oversized_unit_skipped(self):
        filler = [b'"%s",\n' % (c * 40) for c in (b"a", b"b")]
        body = b'data: {"choices": [\n' + b"".join(filler) + sse(openai_chunk("ok"))
        _, events = run(OpenAIAdapter(), body, max_buffer=80)

        assert isinstance(events[0], WarningEvent)
        assert contents(events) == ["ok"]

    def test_overlong_line_skipped_once(self):
        long_line = b"data: " + b"x" * 200 + b"\n\n"
        body = long_line + sse(openai_chunk("ok"))

        _, whole = run(OpenAIAdapter(), body, max_buffer=80)
        chunks = [body[i:i + 7] for i in range(0, len(body), 7)]
        _, split = run(OpenAIAdapter(), *chunks, max_buffer=80)

        assert whole == split
        assert sum(isinstance(e, WarningEvent) for e in whole) == 1
        assert contents(whole) == ["ok"]

    def test_incomplete_unit_at_end(self):
        _, events = run(OpenAIAdapter(), b'data: {"choices": [\n')
        assert isinstance(events[0], WarningEvent)
        assert isinstance(events[-1], Complete)
        assert events[-1].full_message == ""

    def test_end_without_sentinel_completes(self):
        _, events = run(OpenAIAdapter(), sse(openai_chunk("a"), done=False))
        assert contents(events) == ["a"]
        assert isinstance(events[-1], Complete)

    def test_two_units_on_one_line(self):
        line = json.dumps(openai_chunk("a")) + " " + json.dumps(openai_chunk("b"))
        _, events = run(OpenAIAdapter(), f"data: {line}\n\n".encode())
        assert contents(events) == ["a", "b"]

    def test_in_stream_error(self):
        body = sse(openai_chunk("a"), {"error": {"message": "overloaded"}})
        _, events = run(OpenAIAdapter(), body)

        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].error == "overloaded"
        assert not any(isinstance(e, Complete) for e in events)

    @pytest.mark.asyncio
    async def test_events_wrapper(self):
        chunks = [OPENAI_BODY[i:i + 13] for i in range(0, len(OPENAI_BODY), 13)]
        _, expected = run(OpenAIAdapter(), OPENAI_BODY)

        normalizer = StreamNormalizer(OpenAIAdapter())
        events = [e async for e in normalizer.events(stream_body(chunks))]

        assert events == expected


class TestVendorStreams:
    """Test streams without a [DONE] sentinel."""

    def test_google(self):
        def unit(text=None, call=None):
            part = {"text": text} if text is not None else {"functionCall": call}
            return {"candidates": [{"content": {"role": "model", "parts": [part]}}]}

        body = sse(
            unit("Hel"),
            unit("lo"),
            unit(call={"name": "webSearch", "args": {"query": "x"}}),
            unit(call={"name": "webSearch", "args": {"query": "y"}}),
            done=False,
        )
        normalizer, events = run(GoogleAdapter(), body)

        assert contents(events) == ["Hel", "lo"]
        assert events[-1] == Complete(full_message="Hello")
        assert [c.arguments for c in normalizer.tool_calls] == [
            "{\"query\": \"x\"}", "{\"query\": \"y\"}",
        ]

    def test_anthropic(self):
        body = (
            b"event: message_start\n"
            + sse({"type": "message_start", "message": {"id": "msg_1"}}, done=False)
            + b"event: content_block_delta\n"
            + sse({"type": "content_block_delta", "index": 0,
                   "delta": {"type": "text_delta", "text": "Hi"}}, done=False)
            + sse({"type": "content_block_start", "index": 1,
                   "content_block": {"type": "tool_use", "id": "tu_1", "name": "webSearch", "input": {}}},
                  done=False)
            + sse({"type": "content_block_delta", "index": 1,
                   "delta": {"type": "input_json_delta", "partial_json": "{\"query\": "}}, done=False)
            + sse({"type": "content_block_delta", "index": 1,
                   "delta": {"type": "input_json_delta", "partial_json": "\"x\"}"}}, done=False)
            + sse({"type": "message_stop"}, done=False)
            + sse({"type": "content_block_delta", "index": 0,
                   "delta": {"type": "text_delta", "text": "ignored"}}, done=False)
        )
        normalizer, events = run(AnthropicAdapter(), body)

        assert contents(events) == ["Hi"]
        assert sum(isinstance(e, Complete) for e in events) == 1
        assert events[-1].full_message == "Hi"
        assert normalizer.tool_calls == [
            ToolCall(id="tu_1", name="webSearch", arguments="{\"query\": \"x\"}"),
        ]


class TestEventWire:
    """Test the outbound event shapes."""

    def test_base_event_is_abstract(self):
        from llm_gateway.models.events import _Event

        with pytest.raises(TypeError):
            _Event()

    def test_sse_framing(self):
        event = WarningEvent(message="skipped", code="stream_parse_error")
        assert event.to_sse() == (
            'data: {"type": "warning", "message": "skipped", "code": "stream_parse_error"}\n\n'
        )
        assert ContentDelta(content="hi").to_wire() == {"type": "contentDelta", "data": {"content": "hi"}}
