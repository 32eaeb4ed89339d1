from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx

from agent.config import ClientConfig
from shared.constants import ERROR_BODY_PREVIEW_CHARS, INGEST_PATH
from shared.errors import TransportError
from shared.http import client_session, collector_headers
from shared.schemas import IngestRequest, LogEvent
from shared.serialization import canonical_json_bytes

logger = logging.getLogger("oml_agent.sender")


class DeliveryTransport:
    def __init__(self, config: ClientConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self.ingest_url = config.base_url + INGEST_PATH
        self._client = client
        self.headers = collector_headers(config.api_key, config.app_name, config.environment)
        self.headers["Content-Type"] = "application/json"

    def build_body(self, batch: Sequence[LogEvent]) -> bytes:
        return canonical_json_bytes(IngestRequest(logs=list(batch)))

    async def _post(self, body: bytes) -> None:
        try:
            async with client_session(self._client, self.config.timeout_seconds) as client:
                response = await client.post(self.ingest_url, content=body, headers=self.headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"ingest request failed: {exc.__class__.__name__}: {exc}") from exc
        if response.is_error:
            raise TransportError(
                f"ingest rejected ({response.status_code}): {response.text[:ERROR_BODY_PREVIEW_CHARS]}"
            )

    async def send(self, batch: Sequence[LogEvent]) -> bool:
        """Deliver one batch in a single attempt.

        Failures are logged and reported through the return value; the batch
        is not retried.
        """
        if not batch:
            return True
        try:
            await self._post(self.build_body(batch))
        except TransportError as exc:
            logger.error(
                "dropping batch of %d events: %s",
                len(batch),
                exc,
                extra={"batch_size": len(batch), "url": self.ingest_url},
            )
            return False
        logger.debug("delivered batch of %d events", len(batch))
        return True
