"""
localchat - Stream Normalizer

Normalizes every backend's streaming output to one output protocol:

    data: {"content": "<fragment>", "done": false}\\n\\n
    ...
    data: [DONE]\\n\\n

The pipeline per stream is Reassembler -> Decoder -> Encoder:
- ChunkReassembler cuts raw bytes into logical records
- an EventDecoder turns each record into a ProviderEvent (or Skip)
- a DeltaEncoder maps each event to at most one Delta

Exactly one terminal Delta is produced per stream, and it is always the
last one: later completion signals are ignored, and a stream that closes
without any completion signal gets a terminal Delta from ``close()``.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .decoders import (
    DONE_SENTINEL,
    EventDecoder,
    LineJSONDecoder,
    OpenAISSEDecoder,
    ProviderEvent,
    Skip,
    TypedEventSSEDecoder,
)
from .reassembler import (
    ChunkReassembler,
    EventBlockSeparator,
    LineSeparator,
    RecordSeparator,
)


DONE_RECORD = f"data: {DONE_SENTINEL}\n\n"


class WireProtocol(str, Enum):
    """Upstream wire-protocol families."""
    LINE_JSON = "line_json"
    OPENAI_SSE = "openai_sse"
    TYPED_EVENT_SSE = "typed_event_sse"


class UpstreamStreamError(Exception):
    """The backend reported an error in-band, in the middle of a stream."""
    pass


@dataclass(frozen=True)
class Delta:
    """
    One unit of normalized output.

    ``content`` may be empty only on the terminal Delta.
    """
    content: str = ""
    terminal: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "done": self.terminal}

    def to_sse(self) -> List[str]:
        """
        Serialize to output records.

        A terminal Delta writes its trailing content record (if it has
        content) and then the ``[DONE]`` sentinel.
        """
        records: List[str] = []
        if self.content or not self.terminal:
            records.append(f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n")
        if self.terminal:
            records.append(DONE_RECORD)
        return records


# ============================================================
# Encoders
# ============================================================

class DeltaEncoder(ABC):
    """
    Maps provider events to Deltas and enforces the single-terminal rule.

    Subclasses implement ``_translate`` for their protocol family only.
    """

    def __init__(self):
        self._terminated = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    def translate(self, event: ProviderEvent) -> Optional[Delta]:
        """Translate one event into zero or one Delta."""
        if self._terminated:
            return None

        delta = self._translate(event)
        if delta is None:
            return None

        if delta.terminal:
            self._terminated = True
            return delta

        # Non-terminal deltas must carry content
        return delta if delta.content else None

    def finish(self) -> Optional[Delta]:
        """End-of-stream hook: emit the terminal Delta if still owed."""
        if self._terminated:
            return None
        self._terminated = True
        return Delta(terminal=True)

    @abstractmethod
    def _translate(self, event: ProviderEvent) -> Optional[Delta]:
        pass


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


class LineJSONEncoder(DeltaEncoder):
    """``{"message": {"content"}, "done"}`` objects."""

    def _translate(self, event: ProviderEvent) -> Optional[Delta]:
        message = event.payload.get("message")
        content = _as_text(message.get("content")) if isinstance(message, dict) else ""
        return Delta(content=content, terminal=bool(event.payload.get("done")))


class OpenAISSEEncoder(DeltaEncoder):
    """``{"choices": [{"delta": {"content"}, "finish_reason"}]}`` chunks."""

    def _translate(self, event: ProviderEvent) -> Optional[Delta]:
        if event.done_sentinel:
            return Delta(terminal=True)

        choices = event.payload.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None

        choice = choices[0]
        delta = choice.get("delta")
        content = _as_text(delta.get("content")) if isinstance(delta, dict) else ""
        return Delta(content=content, terminal=choice.get("finish_reason") is not None)


class TypedEventEncoder(DeltaEncoder):
    """Typed events: text from ``content_block_delta``, end at ``message_stop``."""

    def _translate(self, event: ProviderEvent) -> Optional[Delta]:
        if event.done_sentinel or event.event_type == "message_stop":
            return Delta(terminal=True)

        if event.event_type == "content_block_delta":
            delta = event.payload.get("delta")
            if isinstance(delta, dict) and delta.get("type") == "text_delta":
                return Delta(content=_as_text(delta.get("text")))

        return None


# ============================================================
# Protocol wiring
# ============================================================

@dataclass(frozen=True)
class ProtocolSpec:
    """Factories for the three per-protocol pipeline stages."""
    separator: Callable[[], RecordSeparator]
    decoder: Callable[[], EventDecoder]
    encoder: Callable[[], DeltaEncoder]


PROTOCOLS: Dict[WireProtocol, ProtocolSpec] = {
    WireProtocol.LINE_JSON: ProtocolSpec(LineSeparator, LineJSONDecoder, LineJSONEncoder),
    WireProtocol.OPENAI_SSE: ProtocolSpec(EventBlockSeparator, OpenAISSEDecoder, OpenAISSEEncoder),
    WireProtocol.TYPED_EVENT_SSE: ProtocolSpec(EventBlockSeparator, TypedEventSSEDecoder, TypedEventEncoder),
}


def create_decoder(protocol: WireProtocol) -> EventDecoder:
    """Decoder for one protocol family (shared with non-streaming calls)."""
    return PROTOCOLS[protocol].decoder()


class StreamPipeline:
    """
    Reassembler -> Decoder -> Encoder for a single stream.

    Usage:
        pipeline = StreamPipeline(WireProtocol.OPENAI_SSE)
        async for chunk in response.aiter_bytes():
            for delta in pipeline.feed(chunk):
                yield delta
            if pipeline.finished:
                break
        for delta in pipeline.close():
            yield delta

    Owns its buffer exclusively; one instance per stream.
    """

    def __init__(self, protocol: WireProtocol):
        spec = PROTOCOLS[protocol]
        self.protocol = protocol
        self.reassembler = ChunkReassembler(spec.separator())
        self.decoder = spec.decoder()
        self.encoder = spec.encoder()
        self.deltas_emitted = 0
        self._pending_error: Optional[UpstreamStreamError] = None

    @property
    def finished(self) -> bool:
        """True once the terminal Delta has been produced."""
        return self.encoder.terminated

    @property
    def failed(self) -> bool:
        """True once the backend reported an in-band error."""
        return self._pending_error is not None

    @property
    def skipped(self) -> int:
        """Records dropped because they could not be decoded."""
        return self.decoder.skipped

    def feed(self, chunk: Union[bytes, str]) -> List[Delta]:
        """
        Push one raw chunk; return the Deltas it completes, in order.

        An in-band backend error raises UpstreamStreamError. When the
        same chunk completed Deltas before the error, those are returned
        first and the error is raised by the next ``feed`` or ``close``.
        """
        self._raise_pending()
        if self.finished:
            return []

        deltas: List[Delta] = []
        for record in self.reassembler.feed(chunk):
            try:
                delta = self._process(record)
            except UpstreamStreamError as e:
                self._pending_error = e
                break
            if delta is not None:
                deltas.append(delta)
            if self.finished:
                break

        self.deltas_emitted += len(deltas)
        if not deltas:
            self._raise_pending()
        return deltas

    def close(self) -> List[Delta]:
        """
        Signal end of upstream.

        Tries the buffered tail as a final record, then guarantees the
        terminal Delta.
        """
        self._raise_pending()
        deltas: List[Delta] = []

        if not self.finished:
            tail = self.reassembler.flush()
            if tail is not None:
                delta = self._process(tail)
                if delta is not None:
                    deltas.append(delta)

        final = self.encoder.finish()
        if final is not None:
            deltas.append(final)

        self.deltas_emitted += len(deltas)
        return deltas

    def _raise_pending(self):
        if self._pending_error is not None:
            raise self._pending_error

    def _process(self, record: str) -> Optional[Delta]:
        result = self.decoder.decode(record)
        if isinstance(result, Skip):
            return None
        if result.error is not None:
            raise UpstreamStreamError(result.error)
        return self.encoder.translate(result)


def normalize_chunks(
    protocol: WireProtocol,
    chunks: Iterable[Union[bytes, str]]
) -> List[Delta]:
    """Run a complete chunk sequence through a fresh pipeline."""
    pipeline = StreamPipeline(protocol)
    deltas: List[Delta] = []
    for chunk in chunks:
        deltas.extend(pipeline.feed(chunk))
        if pipeline.finished or pipeline.failed:
            break
    deltas.extend(pipeline.close())
    return deltas


def encode_deltas(deltas: Iterable[Delta]) -> List[str]:
    """Serialize Deltas to output records."""
    records: List[str] = []
    for delta in deltas:
        records.extend(delta.to_sse())
    return records
