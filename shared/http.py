from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

HEADER_API_KEY = "x-oml-api-key"
HEADER_APP_NAME = "x-oml-app-name"
HEADER_ENVIRONMENT = "x-oml-env"


def collector_headers(api_key: str, app_name: str | None = None, environment: str | None = None) -> dict[str, str]:
    headers = {HEADER_API_KEY: api_key}
    if app_name:
        headers[HEADER_APP_NAME] = app_name
    if environment:
        headers[HEADER_ENVIRONMENT] = environment
    return headers


@asynccontextmanager
async def client_session(client: httpx.AsyncClient | None, timeout: float) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` when given, otherwise a short-lived client closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned
