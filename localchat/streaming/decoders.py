"""
localchat - Provider Event Decoders

One decoder per wire-protocol family. A decoder turns one logical record
into a ProviderEvent, or into a Skip verdict when the record is unusable.
Decoders never raise on bad input: a malformed record is skipped and the
stream carries on.

Families:
- LineJSONDecoder: one JSON object per line (Ollama)
- OpenAISSEDecoder: ``data:`` blocks carrying chat.completion.chunk
  objects, terminated by ``data: [DONE]`` (LM Studio, OpenAI-compatible)
- TypedEventSSEDecoder: ``event:``/``data:`` blocks discriminated by event
  type (Anthropic Messages API)
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Union

from ..observability.logging import get_logger


logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"


class Skip:
    """Decoder verdict: drop this record, keep the stream going."""

    __slots__ = ("reason",)

    def __init__(self, reason: str = ""):
        self.reason = reason

    def __repr__(self) -> str:
        return f"Skip({self.reason!r})"


@dataclass(frozen=True)
class ProviderEvent:
    """
    A decoded backend event.

    ``payload`` is the backend's own JSON object; ``event_type`` is the
    SSE discriminator where the protocol has one. ``done_sentinel`` marks
    an explicit ``[DONE]`` record. ``error`` carries an error message the
    backend reported in-band.
    """
    payload: Dict[str, Any] = field(default_factory=dict)
    event_type: Optional[str] = None
    done_sentinel: bool = False
    error: Optional[str] = None


DecodeResult = Union[ProviderEvent, Skip]


@dataclass
class SSEBlock:
    """Fields of one server-sent event block."""
    event: Optional[str] = None
    data: Optional[str] = None


def parse_sse_block(record: str) -> SSEBlock:
    """
    Parse the fields of one SSE block.

    ``data:`` lines are joined with newlines, one leading space after the
    colon is removed, comment lines and ``id``/``retry`` fields are ignored.
    """
    event: Optional[str] = None
    data_lines: List[str] = []

    for line in record.split("\n"):
        if not line or line.startswith(":"):
            continue

        name, sep, value = line.partition(":")
        if not sep:
            name, value = line, ""
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            data_lines.append(value)
        elif name == "event":
            event = value.strip() or None

    return SSEBlock(
        event=event,
        data="\n".join(data_lines) if data_lines else None,
    )


def _error_message(payload: Dict[str, Any]) -> Optional[str]:
    """Extract an in-band error message, if the payload carries one."""
    error = payload.get("error")
    if error is None:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("type") or error)
    return str(error)


class EventDecoder(ABC):
    """
    Base decoder.

    ``decode`` is the streaming entry point; ``decode_payload`` parses one
    complete JSON document and is shared with the non-streaming path.
    """

    family: str = ""

    def __init__(self):
        self.skipped = 0

    def decode(self, record: str) -> DecodeResult:
        """Decode one logical record."""
        result = self._decode(record)
        if isinstance(result, Skip):
            self.skipped += 1
            logger.debug(
                "Skipping undecodable record",
                family=self.family,
                reason=result.reason,
                record_preview=record[:120],
            )
        return result

    def decode_payload(self, text: str, event_type: Optional[str] = None) -> DecodeResult:
        """Parse a JSON object into a ProviderEvent."""
        try:
            payload = json.loads(text)
        except (ValueError, TypeError):
            return Skip("invalid json")

        if not isinstance(payload, dict):
            return Skip("payload is not an object")

        return ProviderEvent(
            payload=payload,
            event_type=event_type,
            error=_error_message(payload),
        )

    @abstractmethod
    def _decode(self, record: str) -> DecodeResult:
        pass


class LineJSONDecoder(EventDecoder):
    """Each record is a standalone JSON object."""

    family = "line_json"

    def _decode(self, record: str) -> DecodeResult:
        return self.decode_payload(record.strip())


class OpenAISSEDecoder(EventDecoder):
    """``data:`` blocks with chat.completion.chunk payloads."""

    family = "openai_sse"

    def _decode(self, record: str) -> DecodeResult:
        block = parse_sse_block(record)
        if block.data is None:
            return Skip("no data field")

        data = block.data.strip()
        if not data:
            return Skip("empty data field")
        if data == DONE_SENTINEL:
            return ProviderEvent(done_sentinel=True)

        return self.decode_payload(data, event_type=block.event)


class TypedEventSSEDecoder(EventDecoder):
    """
    Typed SSE events.

    The event type is checked before any payload parsing: an explicit
    ``event:`` field that is not a known type is skipped unparsed. Without
    an ``event:`` field, the payload's own ``type`` is used.
    """

    family = "typed_event_sse"

    KNOWN_EVENTS: FrozenSet[str] = frozenset({
        "message_start",
        "content_block_start",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
        "message_stop",
        "ping",
        "error",
    })

    def _decode(self, record: str) -> DecodeResult:
        block = parse_sse_block(record)

        if block.event is not None and block.event not in self.KNOWN_EVENTS:
            return Skip(f"unrecognized event type {block.event!r}")

        if block.data is None:
            return Skip("no data field")

        data = block.data.strip()
        if not data:
            return Skip("empty data field")
        if data == DONE_SENTINEL:
            return ProviderEvent(done_sentinel=True)

        result = self.decode_payload(data, event_type=block.event)
        if isinstance(result, Skip):
            return result

        event_type = block.event or result.payload.get("type")
        if event_type not in self.KNOWN_EVENTS:
            return Skip(f"unrecognized event type {event_type!r}")

        if event_type == "error" and result.error is None:
            return ProviderEvent(
                payload=result.payload,
                event_type=event_type,
                error="Unknown streaming error",
            )

        return ProviderEvent(
            payload=result.payload,
            event_type=event_type,
            error=result.error,
        )
