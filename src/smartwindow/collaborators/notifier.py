"""Push notifications for window transitions."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

import httpx

from smartwindow.errors import NotifierUnavailable
from smartwindow.obs.redaction import redact_value

if TYPE_CHECKING:
    from smartwindow.relay.state import SystemState

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

_RETRY_STATUS = frozenset({429, 500, 502, 503, 504})


class Notifier(Protocol):
    async def notify(self, text: str) -> None: ...


def format_window_alert(state: SystemState) -> str:
    return (
        "🚨 Smart Window Alert 🚨\n"
        f"Window: {state.window.value}\n"
        f"Mode: {state.mode.value}\n"
        f"Temp: {state.temperature:g}°C\n"
        f"Light: {state.light:g} lux"
    )


class NullNotifier:
    """Used when no push channel is configured."""

    async def notify(self, text: str) -> None:
        logger.debug("notifier disabled; dropping alert")


class TelegramNotifier:
    """Send alerts through the Telegram Bot API ``sendMessage`` method."""

    def __init__(
        self,
        token: str,
        chat_id: str,
        *,
        client: httpx.AsyncClient,
        base_url: str = TELEGRAM_API_BASE,
        attempts: int = 3,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/bot{token}/sendMessage"
        self._chat_id = chat_id
        self._client = client
        self._attempts = max(1, attempts)

    async def notify(self, text: str) -> None:
        payload = {"chat_id": self._chat_id, "text": text}
        backoff = 0.5
        last_error = "no attempt made"
        for attempt in range(self._attempts):
            try:
                resp = await self._client.post(self._url, json=payload)
            except httpx.HTTPError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
            else:
                if resp.status_code == 200:
                    logger.info("telegram alert sent")
                    return
                last_error = f"HTTP {resp.status_code}"
                if resp.status_code not in _RETRY_STATUS:
                    break
            if attempt + 1 < self._attempts:
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 5.0)
        raise NotifierUnavailable(redact_value(f"telegram sendMessage failed: {last_error}"))
