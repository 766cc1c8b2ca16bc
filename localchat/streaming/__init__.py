"""
localchat - Streaming Module

Normalizes line-delimited JSON, OpenAI-style SSE and typed-event SSE
streams into one output protocol of ``{content, done}`` records plus a
single ``[DONE]`` sentinel.
"""

from .reassembler import (
    ChunkReassembler,
    RecordSeparator,
    LineSeparator,
    EventBlockSeparator,
)
from .decoders import (
    DONE_SENTINEL,
    Skip,
    ProviderEvent,
    DecodeResult,
    SSEBlock,
    parse_sse_block,
    EventDecoder,
    LineJSONDecoder,
    OpenAISSEDecoder,
    TypedEventSSEDecoder,
)
from .normalizer import (
    DONE_RECORD,
    WireProtocol,
    UpstreamStreamError,
    Delta,
    DeltaEncoder,
    LineJSONEncoder,
    OpenAISSEEncoder,
    TypedEventEncoder,
    ProtocolSpec,
    PROTOCOLS,
    StreamPipeline,
    create_decoder,
    normalize_chunks,
    encode_deltas,
)

__all__ = [
    # Reassembler
    "ChunkReassembler",
    "RecordSeparator",
    "LineSeparator",
    "EventBlockSeparator",
    # Decoders
    "DONE_SENTINEL",
    "Skip",
    "ProviderEvent",
    "DecodeResult",
    "SSEBlock",
    "parse_sse_block",
    "EventDecoder",
    "LineJSONDecoder",
    "OpenAISSEDecoder",
    "TypedEventSSEDecoder",
    # Normalizer
    "DONE_RECORD",
    "WireProtocol",
    "UpstreamStreamError",
    "Delta",
    "DeltaEncoder",
    "LineJSONEncoder",
    "OpenAISSEEncoder",
    "TypedEventEncoder",
    "ProtocolSpec",
    "PROTOCOLS",
    "StreamPipeline",
    "create_decoder",
    "normalize_chunks",
    "encode_deltas",
]
