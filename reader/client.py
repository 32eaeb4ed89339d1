from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx

from agent.config import ClientConfig
from shared.constants import ERROR_BODY_PREVIEW_CHARS, QUERY_PATH, STREAM_PATH
from shared.errors import QueryError, StreamConnectionError
from shared.http import client_session, collector_headers
from shared.serialization import build_filter_key

logger = logging.getLogger("oml_reader.client")


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the data payload of each server-sent event.

    Multiple ``data:`` lines of one event are joined with newlines; comments,
    ``event:``, ``id:`` and ``retry:`` fields are ignored.
    """
    data: list[str] = []
    async for line in lines:
        if not line:
            if data:
                yield "\n".join(data)
                data = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data.append(value)
    if data:
        yield "\n".join(data)


def extract_rows(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("logs"), list):
        return payload["logs"]
    return []


class CollectorClient:
    """HTTP read paths of the collector: point queries and the live stream."""

    def __init__(self, config: ClientConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self.headers = collector_headers(config.api_key, config.app_name, config.environment)
        self._client = client

    def url_for(self, path: str, filters: Mapping[str, Any] | None) -> str:
        key = build_filter_key(filters)
        url = self.config.base_url + path
        return f"{url}?{key}" if key else url

    async def get_logs(self, filters: Mapping[str, Any] | None = None) -> Any:
        url = self.url_for(QUERY_PATH, filters)
        try:
            async with client_session(self._client, self.config.timeout_seconds) as client:
                response = await client.get(url, headers=self.headers)
        except httpx.HTTPError as exc:
            raise QueryError(f"log query failed: {exc.__class__.__name__}: {exc}") from exc
        if response.is_error:
            body = response.text[:ERROR_BODY_PREVIEW_CHARS]
            raise QueryError(
                f"log query failed ({response.status_code}): {body}",
                status_code=response.status_code,
                body=body,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise QueryError(
                "log query returned invalid JSON", status_code=response.status_code, body=response.text[:ERROR_BODY_PREVIEW_CHARS]
            ) from exc

    async def iter_events(self, filters: Mapping[str, Any] | None = None) -> AsyncIterator[str]:
        """Open the live stream and yield raw message payloads until it ends."""
        url = self.url_for(STREAM_PATH, filters)
        headers = {**self.headers, "Accept": "text/event-stream"}
        timeout = httpx.Timeout(self.config.timeout_seconds, read=None)
        try:
            async with client_session(self._client, self.config.timeout_seconds) as client:
                async with client.stream("GET", url, headers=headers, timeout=timeout) as response:
                    if response.is_error:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise StreamConnectionError(
                            f"stream rejected ({response.status_code}): {body[:ERROR_BODY_PREVIEW_CHARS]}"
                        )
                    logger.debug("stream opened", extra={"url": url})
                    async for data in iter_sse_data(response.aiter_lines()):
                        yield data
        except httpx.HTTPError as exc:
            raise StreamConnectionError(f"stream failed: {exc.__class__.__name__}: {exc}") from exc
