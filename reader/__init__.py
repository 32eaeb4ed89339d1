"""Read paths of the oneminutelogs client: point queries and live streams."""

from reader.client import CollectorClient, extract_rows, iter_sse_data
from reader.query import LogQuery, QueryCache, default_query_cache
from reader.stream import (
    Incremental,
    InitialBatch,
    LiveStream,
    StreamRecord,
    StreamWindow,
    decode_message,
    normalize_level,
    normalize_timestamp,
)

__all__ = [
    "CollectorClient",
    "extract_rows",
    "iter_sse_data",
    "QueryCache",
    "LogQuery",
    "default_query_cache",
    "LiveStream",
    "StreamRecord",
    "StreamWindow",
    "InitialBatch",
    "Incremental",
    "decode_message",
    "normalize_level",
    "normalize_timestamp",
]
