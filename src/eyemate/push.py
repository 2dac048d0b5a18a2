"""Push delivery through the Expo push service.

:class:`PushSender` is the seam the reminder engine calls; :class:`ExpoPushSender`
is the production implementation.  It looks up a patient's active device
tokens, posts the messages to Expo in chunks of at most 100, and records one
``notification_history`` row per send.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import asyncpg
import httpx

from eyemate.ids import HISTORY_PREFIX, generate_id

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"
EXPO_CHUNK_SIZE = 100

_EXPO_TOKEN_RE = re.compile(r"^Expo(nent)?PushToken\[[^\]]+\]$")


def is_expo_push_token(token: Any) -> bool:
    """Return True for ``ExponentPushToken[...]`` / ``ExpoPushToken[...]`` strings."""
    return isinstance(token, str) and bool(_EXPO_TOKEN_RE.match(token))


@dataclass
class PushMessage:
    """Payload handed to a push sender."""

    title: str
    body: str
    data: dict[str, Any]
    priority: str = "high"
    notification_type: str = "medication_reminder"


@dataclass
class DeliveryOutcome:
    """Result of one send to all of a patient's devices."""

    success: bool
    reason: str | None = None
    tickets: list[dict[str, Any]] = field(default_factory=list)

    @property
    def delivered_count(self) -> int:
        return sum(1 for t in self.tickets if t.get("status") == "ok")


class PushSender(Protocol):
    async def send(self, patient_id: str, message: PushMessage) -> DeliveryOutcome: ...


def _chunks(items: list[Any], size: int) -> list[list[Any]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class ExpoPushSender:
    """Send :class:`PushMessage` payloads to every active Expo token of a patient."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        *,
        push_url: str = EXPO_PUSH_URL,
        http_client: httpx.AsyncClient | None = None,
        chunk_size: int = EXPO_CHUNK_SIZE,
        timeout: float = 10.0,
    ) -> None:
        self._pool = pool
        self._push_url = push_url
        self._client = http_client
        self._owns_client = http_client is None
        self._chunk_size = chunk_size
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _active_tokens(self, patient_id: str) -> list[str]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT expo_push_token FROM push_tokens
                WHERE patient_id = $1 AND is_active = true
                """,
                patient_id,
            )
        return [r["expo_push_token"] for r in rows if is_expo_push_token(r["expo_push_token"])]

    def _build_messages(self, tokens: list[str], message: PushMessage) -> list[dict[str, Any]]:
        priority = "high" if message.priority in ("high", "urgent") else "normal"
        return [
            {
                "to": token,
                "sound": "default",
                "title": message.title,
                "body": message.body,
                "data": message.data,
                "priority": priority,
                "badge": 1,
                "channelId": "default",
            }
            for token in tokens
        ]

    async def _post_chunk(self, chunk: list[dict[str, Any]]) -> list[dict[str, Any]]:
        resp = await self._get_client().post(
            self._push_url,
            json=chunk,
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
        return list(resp.json().get("data", []))

    async def _record_history(
        self, patient_id: str, message: PushMessage, delivered: bool
    ) -> None:
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO notification_history (
                        notification_id, patient_id, notification_type,
                        title, body, sent_at, delivered, opened
                    ) VALUES ($1, $2, $3, $4, $5, now(), $6, false)
                    """,
                    generate_id(HISTORY_PREFIX),
                    patient_id,
                    message.notification_type,
                    message.title,
                    message.body,
                    delivered,
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError):
            logger.exception("Failed to record notification history for %s", patient_id)

    async def send(self, patient_id: str, message: PushMessage) -> DeliveryOutcome:
        tokens = await self._active_tokens(patient_id)
        if not tokens:
            logger.info("No push tokens registered for patient %s", patient_id)
            return DeliveryOutcome(success=False, reason="no_tokens")

        tickets: list[dict[str, Any]] = []
        for chunk in _chunks(self._build_messages(tokens, message), self._chunk_size):
            try:
                tickets.extend(await self._post_chunk(chunk))
            except httpx.HTTPError as exc:
                logger.warning("Expo push chunk of %d failed: %s", len(chunk), exc)

        outcome = DeliveryOutcome(success=bool(tickets), tickets=tickets)
        if not tickets:
            outcome.reason = "send_failed"
        await self._record_history(patient_id, message, outcome.delivered_count > 0)
        logger.info(
            "Push to patient %s: %d ticket(s), %d ok",
            patient_id,
            len(tickets),
            outcome.delivered_count,
        )
        return outcome
