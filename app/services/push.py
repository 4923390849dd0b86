from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.config import settings
from app.models.notification import Notification


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PushResult:
    ok: bool
    status_code: int | None = None
    skipped: bool = False
    error_message: str | None = None
    retryable: bool = False


class PushClient:
    """
    Forwards notifications to the push gateway webhook.

    - One AsyncClient per instance (connection pooling).
    - No retries here; a failed push is reported, the stored notification stands.
    - Disabled (every call is a no-op) when no webhook URL is configured.
    """

    def __init__(self, *, webhook_url: str | None = None, timeout_seconds: float | None = None):
        self._url = webhook_url if webhook_url is not None else settings.push_webhook_url
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds or settings.push_timeout_seconds))

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, notification: Notification) -> PushResult:
        if not self.enabled:
            return PushResult(ok=True, skipped=True)

        body: dict[str, Any] = {
            "user_id": notification.user_id,
            "type": notification.type,
            "title": notification.payload.get("title"),
            "body": notification.payload.get("message"),
            "data": notification.payload.get("data", {}),
        }
        try:
            resp = await self._client.post(self._url, json=body, headers={"X-Request-Id": notification.id})
        except httpx.TimeoutException as e:
            return PushResult(ok=False, error_message=f"timeout: {e}", retryable=True)
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            return PushResult(ok=False, error_message=f"request error: {e}", retryable=True)

        if 200 <= resp.status_code < 300:
            return PushResult(ok=True, status_code=resp.status_code)

        retryable = resp.status_code in (408, 429, 500, 502, 503, 504)
        return PushResult(
            ok=False,
            status_code=resp.status_code,
            error_message=f"HTTP {resp.status_code}",
            retryable=retryable,
        )
