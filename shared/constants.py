from __future__ import annotations

DEFAULT_FLUSH_INTERVAL_SECONDS = 2.0
DEFAULT_TIMEOUT_SECONDS = 10
DEFAULT_STREAM_RETRY_SECONDS = 3.0

MAX_STREAM_RECORDS = 5000
MAX_MESSAGE_LEN = 8192
MAX_STRING_LEN = 1024
ERROR_BODY_PREVIEW_CHARS = 200

DEFAULT_APP_NAME = "default"
DEFAULT_ENVIRONMENT = "development"

INGEST_PATH = "/send"
QUERY_PATH = "/logs"
STREAM_PATH = "/logs/stream"
