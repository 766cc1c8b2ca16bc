"""
localchat - Byte-Chunk Reassembler

Turns arbitrarily split network chunks into complete logical records.

One reassembler serves every wire protocol; the only thing that varies
is the separator strategy:
- LineSeparator: one record per line (line-delimited JSON)
- EventBlockSeparator: one record per blank-line-terminated SSE block

Bytes are decoded incrementally, so a multi-byte UTF-8 character split
across two chunks is held back until it is complete.
"""

import codecs
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, Union


class RecordSeparator(ABC):
    """Strategy that cuts complete records off the front of a buffer."""

    @abstractmethod
    def split(self, buffer: str) -> Tuple[List[str], str]:
        """
        Split buffered text into complete records.

        Returns:
            (complete records in order, unterminated remainder)
        """
        pass

    def finalize(self, remainder: str) -> str:
        """Clean up the unterminated remainder at end of stream."""
        return remainder.strip("\r\n")


class LineSeparator(RecordSeparator):
    """Newline-terminated records; a trailing ``\\r`` is dropped."""

    def split(self, buffer: str) -> Tuple[List[str], str]:
        parts = buffer.split("\n")
        remainder = parts.pop()
        return [part.rstrip("\r") for part in parts], remainder


class EventBlockSeparator(RecordSeparator):
    """
    SSE event blocks terminated by a blank line.

    Line endings may be ``\\n``, ``\\r\\n`` or ``\\r``. A buffer ending in a
    bare ``\\r`` keeps it unnormalized, since the next chunk may start
    with the ``\\n`` that completes a ``\\r\\n`` pair.
    """

    def split(self, buffer: str) -> Tuple[List[str], str]:
        held = ""
        if buffer.endswith("\r"):
            buffer, held = buffer[:-1], "\r"

        normalized = buffer.replace("\r\n", "\n").replace("\r", "\n")
        parts = normalized.split("\n\n")
        remainder = parts.pop() + held
        return parts, remainder

    def finalize(self, remainder: str) -> str:
        return remainder.replace("\r\n", "\n").replace("\r", "\n").strip("\n")


class ChunkReassembler:
    """
    Buffers raw chunks and yields complete logical records.

    Usage:
        reassembler = ChunkReassembler(LineSeparator())
        for chunk in chunks:
            for record in reassembler.feed(chunk):
                ...
        tail = reassembler.flush()   # once, when upstream closes

    Blank records are dropped here and never reach a decoder.
    """

    def __init__(self, separator: RecordSeparator, encoding: str = "utf-8"):
        self.separator = separator
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._flushed = False

    @property
    def pending(self) -> int:
        """Number of buffered characters not yet part of a complete record."""
        return len(self._buffer)

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        """Add a chunk and return every record it completes."""
        if self._flushed:
            raise RuntimeError("Reassembler already flushed")

        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")

        self._buffer += self._decoder.decode(chunk)
        records, self._buffer = self.separator.split(self._buffer)
        return [record for record in records if record.strip()]

    def flush(self) -> Optional[str]:
        """
        Return whatever is left once the upstream has closed.

        Covers backends that omit the final separator. The caller decides
        whether the returned record is parseable.
        """
        if self._flushed:
            return None
        self._flushed = True

        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""

        tail = self.separator.finalize(remainder).strip()
        return tail or None
