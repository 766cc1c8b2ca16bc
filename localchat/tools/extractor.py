"""
localchat - Tool-Call Extractor

Finds tool-call markers embedded in generated text:

    Let me look that up. <tool_call>{"name": "web_search", "arguments": {"query": "x"}}</tool_call>

and returns the parsed calls plus the text with every marker removed.
Extraction runs once, over the fully accumulated text, since a marker can
straddle any number of streamed deltas.

Policies:
- malformed payloads are dropped, but their marker is still removed
- an opening delimiter with no closing one is removed through end of text
- whitespace around each removal point collapses to a single space, or a
  single newline if either side had a line break, or nothing at the edges
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set, Tuple

from ..observability.logging import get_logger
from .schema import ToolCall


logger = get_logger(__name__)

DEFAULT_MARKER_OPEN = "<tool_call>"
DEFAULT_MARKER_CLOSE = "</tool_call>"

ARGUMENT_KEYS = ("arguments", "params", "input")

_CODE_BLOCK = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?")
_BARE_WORD = re.compile(r"[A-Za-z_$][\w$\-.]*")
_JSON_LITERALS = {"true": "true", "false": "false", "null": "null", "True": "true", "False": "false", "None": "null"}


@dataclass
class ExtractionResult:
    """Calls found in the text, in order of appearance, plus the visible text."""
    calls: List[ToolCall] = field(default_factory=list)
    visible_text: str = ""

    @property
    def has_calls(self) -> bool:
        return bool(self.calls)


# ============================================================
# Payload parsing
# ============================================================

def _string_end(text: str, start: int, quote: str) -> int:
    """Index just past the string literal opening at ``start``."""
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return len(text)


def repair_json(raw: str) -> str:
    """
    One lenient repair pass over a JSON-like payload.

    Quotes bare keys and bare identifier values, converts single-quoted
    strings, and drops trailing commas, so shorthand such as
    ``{id:1,name:x,arguments:{q:1}}`` becomes valid JSON.
    """
    out: List[str] = []
    i = 0
    n = len(raw)

    while i < n:
        ch = raw[i]

        if ch == '"':
            end = _string_end(raw, i, '"')
            out.append(raw[i:end])
            i = end
            continue

        if ch == "'":
            end = _string_end(raw, i, "'")
            body = raw[i + 1:end - 1] if end <= n and raw[end - 1:end] == "'" else raw[i + 1:end]
            body = body.replace("\\'", "'")
            out.append(json.dumps(body))
            i = end
            continue

        if ch == ",":
            j = i + 1
            while j < n and raw[j].isspace():
                j += 1
            if j < n and raw[j] in "}]":
                i += 1
                continue
            out.append(ch)
            i += 1
            continue

        number = _NUMBER.match(raw, i)
        if number:
            out.append(number.group())
            i = number.end()
            continue

        word = _BARE_WORD.match(raw, i)
        if word:
            text = word.group()
            out.append(_JSON_LITERALS.get(text) or json.dumps(text))
            i = word.end()
            continue

        out.append(ch)
        i += 1

    return "".join(out)


def parse_payload(raw: str) -> Optional[Any]:
    """Strict JSON first, then one repair pass; None if both fail."""
    raw = raw.strip()
    if not raw:
        return None

    try:
        return json.loads(raw)
    except ValueError:
        pass

    try:
        return json.loads(repair_json(raw))
    except ValueError:
        return None


# ============================================================
# Extractor
# ============================================================

class ToolCallExtractor:
    """
    Pure function over accumulated text, configured with its delimiters.

    Usage:
        extractor = ToolCallExtractor()
        result = extractor.extract(full_text)
        for call in result.calls:
            ...
    """

    def __init__(
        self,
        marker_open: str = DEFAULT_MARKER_OPEN,
        marker_close: str = DEFAULT_MARKER_CLOSE,
        code_blocks: bool = False,
    ):
        if not marker_open or not marker_close:
            raise ValueError("Tool-call delimiters must be non-empty")
        self.marker_open = marker_open
        self.marker_close = marker_close
        self.code_blocks = code_blocks

    def extract(self, text: str) -> ExtractionResult:
        """Parse every marker in ``text`` and strip them all from it."""
        spans, payloads = self._find_markers(text)

        if not spans and self.code_blocks:
            spans, payloads = self._find_code_blocks(text)

        calls: List[ToolCall] = []
        used_ids: Set[str] = set()
        for payload in payloads:
            call = self._build_call(payload, calls, used_ids) if payload is not None else None
            if call is not None:
                calls.append(call)

        dropped = len(payloads) - len(calls)
        if dropped:
            logger.debug("Dropped malformed tool-call payloads", dropped=dropped)

        return ExtractionResult(
            calls=calls,
            visible_text=self._remove_spans(text, spans),
        )

    def _find_markers(self, text: str) -> Tuple[List[Tuple[int, int]], List[Optional[Any]]]:
        spans: List[Tuple[int, int]] = []
        payloads: List[Optional[Any]] = []

        pos = 0
        while True:
            start = text.find(self.marker_open, pos)
            if start < 0:
                break

            body_start = start + len(self.marker_open)
            close = text.find(self.marker_close, body_start)
            if close < 0:
                # Cut off by end of text
                spans.append((start, len(text)))
                payloads.append(None)
                break

            spans.append((start, close + len(self.marker_close)))
            payloads.append(parse_payload(text[body_start:close]))
            pos = close + len(self.marker_close)

        return spans, payloads

    def _find_code_blocks(self, text: str) -> Tuple[List[Tuple[int, int]], List[Optional[Any]]]:
        """Fenced JSON blocks shaped like a tool call (``tool``/``name``/``function``)."""
        spans: List[Tuple[int, int]] = []
        payloads: List[Optional[Any]] = []

        for match in _CODE_BLOCK.finditer(text):
            data = parse_payload(match.group(1))
            if not isinstance(data, dict):
                continue

            name = data.get("tool") or data.get("name") or data.get("function")
            if not name:
                continue

            payload = dict(data)
            payload["name"] = name
            spans.append(match.span())
            payloads.append(payload)

        return spans, payloads

    def _build_call(
        self,
        payload: Any,
        calls: List[ToolCall],
        used_ids: Set[str],
    ) -> Optional[ToolCall]:
        if not isinstance(payload, dict):
            return None

        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            return None

        arguments: Any = {}
        for key in ARGUMENT_KEYS:
            if payload.get(key) is not None:
                arguments = payload[key]
                break
        if isinstance(arguments, str):
            decoded = parse_payload(arguments)
            if isinstance(decoded, dict):
                arguments = decoded

        call_id = self._call_id(payload.get("id"), len(calls), used_ids)
        used_ids.add(call_id)
        return ToolCall(id=call_id, name=name.strip(), arguments=arguments)

    @staticmethod
    def _call_id(raw: Any, index: int, used_ids: Set[str]) -> str:
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return str(raw)

        n = index + 1
        while f"call_{n}" in used_ids:
            n += 1
        return f"call_{n}"

    @staticmethod
    def _remove_spans(text: str, spans: List[Tuple[int, int]]) -> str:
        if not spans:
            return text

        # Markers separated only by whitespace form one removal point
        groups: List[List[int]] = []
        for start, end in spans:
            if groups and not text[groups[-1][1]:start].strip():
                groups[-1][1] = end
            else:
                groups.append([start, end])

        segments = []
        pos = 0
        for start, end in groups:
            segments.append(text[pos:start])
            pos = end
        segments.append(text[pos:])

        result = segments[0]
        for segment in segments[1:]:
            left = result.rstrip()
            right = segment.lstrip()
            left_ws = result[len(left):]
            right_ws = segment[:len(segment) - len(right)]

            if not left or not right:
                separator = ""
            elif "\n" in left_ws or "\n" in right_ws or "\r" in left_ws or "\r" in right_ws:
                separator = "\n"
            elif left_ws or right_ws:
                separator = " "
            else:
                separator = ""

            result = left + separator + right

        return result


def extract_tool_calls(
    text: str,
    marker_open: str = DEFAULT_MARKER_OPEN,
    marker_close: str = DEFAULT_MARKER_CLOSE,
) -> ExtractionResult:
    """Extract with the given delimiters."""
    return ToolCallExtractor(marker_open, marker_close).extract(text)
