"""
Stream normalization.

Turns a provider's event stream into gateway events. Network chunks do
not line up with logical events, so bytes are decoded incrementally and
only newline-terminated lines are interpreted; a JSON unit broken across
lines is held in a buffer until it parses. All of this state belongs to
one call and is dropped when the stream ends.
"""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from ..models.events import Complete, ContentDelta, ErrorEvent, ToolCallFragment, WarningEvent
from ..models.request import ToolCall
from .errors import StreamParseError
from .interface import ProviderAdapter

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER = 1024 * 1024

# SSE fields that carry no payload for us
IGNORED_FIELDS = ("event:", "id:", "retry:")


@dataclass
class _PendingCall:
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: List[str] = field(default_factory=list)


@dataclass
class StreamState:
    """Buffers and accumulators for one open call."""
    line_buffer: str = ""
    unit_buffer: str = ""
    skipping_line: bool = False
    content: List[str] = field(default_factory=list)
    calls: List[_PendingCall] = field(default_factory=list)
    calls_by_index: Dict[int, _PendingCall] = field(default_factory=dict)
    done: bool = False
    error: Optional[str] = None


class StreamNormalizer:
    """
    Incremental parser for one provider stream.

    ``feed`` and ``finish`` return the events produced by that input;
    ``events`` wraps an async byte source and yields events as they are
    produced. Exactly one ``Complete`` is emitted per call, unless the
    provider reports an error in-stream, which ends the call with an
    ``ErrorEvent`` instead.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        max_buffer: int = DEFAULT_MAX_BUFFER,
    ):
        self.adapter = adapter
        self.max_buffer = max_buffer
        self.state = StreamState()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._json = json.JSONDecoder()

    @property
    def done(self) -> bool:
        return self.state.done

    @property
    def full_message(self) -> str:
        return "".join(self.state.content)

    @property
    def tool_calls(self) -> List[ToolCall]:
        return [
            ToolCall(id=c.call_id, name=c.name or "", arguments="".join(c.arguments) or "{}")
            for c in self.state.calls
        ]

    def feed(self, chunk: Union[bytes, str]) -> List[Any]:
        if self.state.done:
            return []

        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        lines = (self.state.line_buffer + text).split("\n")
        self.state.line_buffer = lines.pop()

        events: List[Any] = []
        for line in lines:
            if self.state.done:
                break
            if self.state.skipping_line:
                self.state.skipping_line = False
                continue
            if len(line) > self.max_buffer:
                events.append(self._line_too_long(line))
                continue
            events.extend(self._line(line))

        if not self.state.done and len(self.state.line_buffer) > self.max_buffer:
            # Drop the rest of this line as it arrives
            if not self.state.skipping_line:
                events.append(self._line_too_long(self.state.line_buffer))
            self.state.line_buffer = ""
            self.state.skipping_line = True

        return events

    def finish(self) -> List[Any]:
        """Flush what is left at end of stream and complete the call."""
        if self.state.done:
            return []

        events: List[Any] = []
        tail = self.state.line_buffer + self._decoder.decode(b"", final=True)
        self.state.line_buffer = ""
        if tail and not self.state.skipping_line:
            events.extend(self._line(tail))

        if not self.state.done:
            if self.state.unit_buffer.strip():
                events.append(self._parse_error(
                    "Stream ended inside an incomplete unit",
                    self.state.unit_buffer,
                ))
                self.state.unit_buffer = ""
            events.append(self._complete())

        return events

    async def events(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[Any]:
        async for chunk in chunks:
            for event in self.feed(chunk):
                yield event
            if self.state.done:
                return
        for event in self.finish():
            yield event

    def _line(self, line: str) -> List[Any]:
        line = line.rstrip("\r")
        if not line.strip() or line.startswith(":"):
            return []

        if line.startswith("data:"):
            line = line[5:]
            if line.startswith(" "):
                line = line[1:]
        elif line.startswith(IGNORED_FIELDS):
            return []

        if self.adapter.SENTINEL and line.strip() == self.adapter.SENTINEL:
            events: List[Any] = []
            if self.state.unit_buffer.strip():
                events.append(self._parse_error(
                    "Incomplete unit before end of stream",
                    self.state.unit_buffer,
                ))
                self.state.unit_buffer = ""
            events.append(self._complete())
            return events

        try:
            unit = json.loads(line)
        except ValueError:
            pass
        else:
            events = []
            # A line that parses alone ends whatever was pending
            if self.state.unit_buffer.strip():
                events.append(self._parse_error("Incomplete stream unit, skipped", self.state.unit_buffer))
            self.state.unit_buffer = ""
            events.extend(self._unit(unit))
            return events

        if not self.state.unit_buffer:
            return self._drain(line)
        return self._drain(self.state.unit_buffer + "\n" + line)

    def _drain(self, buffer: str) -> List[Any]:
        """Decode as many complete units as the buffer holds, keep the rest."""
        events: List[Any] = []
        while not self.state.done:
            buffer = buffer.lstrip()
            if not buffer:
                break

            if buffer[0] not in "{[":
                events.append(self._parse_error("Unparseable stream unit, skipped", buffer))
                buffer = ""
                break

            try:
                unit, end = self._json.raw_decode(buffer)
            except ValueError:
                if len(buffer) > self.max_buffer:
                    events.append(self._parse_error(
                        f"Stream unit exceeds {self.max_buffer} characters, skipped",
                        buffer,
                    ))
                    buffer = ""
                break

            events.extend(self._unit(unit))
            buffer = buffer[end:]

        self.state.unit_buffer = "" if self.state.done else buffer
        return events

    def _unit(self, unit: Any) -> List[Any]:
        delta = self.adapter.parse_unit(unit)
        events: List[Any] = []

        if delta.error:
            logger.error(f"{self.adapter.provider_id} stream error: {delta.error}")
            self.state.done = True
            self.state.error = delta.error
            events.append(ErrorEvent(error=delta.error, code="provider_stream_error"))
            return events

        if delta.content:
            self.state.content.append(delta.content)
            events.append(ContentDelta(content=delta.content))

        for fragment in delta.tool_calls:
            self._accumulate(fragment)
            events.append(fragment)

        if delta.finished:
            events.append(self._complete())

        return events

    def _accumulate(self, fragment: ToolCallFragment) -> None:
        if fragment.index is None:
            call = _PendingCall()
            self.state.calls.append(call)
        else:
            call = self.state.calls_by_index.get(fragment.index)
            if call is None:
                call = _PendingCall()
                self.state.calls_by_index[fragment.index] = call
                self.state.calls.append(call)

        call.call_id = call.call_id or fragment.call_id
        call.name = call.name or fragment.name
        if fragment.arguments:
            call.arguments.append(fragment.arguments)

    def _complete(self) -> Complete:
        self.state.done = True
        return Complete(full_message=self.full_message)

    def _line_too_long(self, line: str) -> WarningEvent:
        return self._parse_error(f"Stream line exceeds {self.max_buffer} characters, skipped", line)

    def _parse_error(self, message: str, unit: str) -> WarningEvent:
        error = StreamParseError(message, unit=unit[:200], provider=self.adapter.provider_id)
        logger.warning(f"{error.message}: {error.unit!r}")
        return WarningEvent(message=error.message, code=error.code)
