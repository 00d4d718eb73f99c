"""Client for the remote store endpoints.

Each method maps one endpoint to its wire models; transport errors
propagate as RemoteError subclasses.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from examsync.sync.schemas import (
    RemoteHistoryPage,
    RemoteStreak,
    RemoteUserStats,
    SubmitExamRequest,
)
from examsync.sync.transport import AuthenticatedTransport, RemoteResponseError

USER_STATS_PATH = "/user-stats/me"
USER_STREAK_PATH = "/user-streak/me"
HISTORY_PATH = "/exam-attempts/my-history"
SUBMIT_PATH = "/exam-attempts/submit-authenticated"
HEALTH_PATH = "/health"


def _parse(model: type, payload: Any, path: str):
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise RemoteResponseError(f"Unexpected response shape from {path}: {e}") from e


class RemoteStore:
    """Typed access to the remote store."""

    def __init__(self, transport: AuthenticatedTransport, exam_type_id: str | None = None):
        self.transport = transport
        self.exam_type_id = exam_type_id

    @property
    def has_credential(self) -> bool:
        return self.transport.has_credential

    async def get_user_stats(self) -> RemoteUserStats:
        payload = await self.transport.get(USER_STATS_PATH)
        return _parse(RemoteUserStats, payload, USER_STATS_PATH)

    async def put_user_stats(self, stats: RemoteUserStats) -> RemoteUserStats | None:
        """Push counters; returns the server-merged counters if it sent them."""
        payload = await self.transport.put(USER_STATS_PATH, json=stats.to_wire())
        return _parse(RemoteUserStats, payload, USER_STATS_PATH) if payload else None

    async def get_streak(self) -> RemoteStreak:
        payload = await self.transport.get(USER_STREAK_PATH)
        return _parse(RemoteStreak, payload, USER_STREAK_PATH)

    async def put_streak(self, streak: RemoteStreak) -> RemoteStreak | None:
        payload = await self.transport.put(USER_STREAK_PATH, json=streak.to_wire())
        return _parse(RemoteStreak, payload, USER_STREAK_PATH) if payload else None

    async def get_history_page(self, page: int, limit: int) -> RemoteHistoryPage:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if self.exam_type_id:
            params["examTypeId"] = self.exam_type_id
        payload = await self.transport.get(HISTORY_PATH, params=params)
        return _parse(RemoteHistoryPage, payload, HISTORY_PATH)

    async def submit_exam(self, request: SubmitExamRequest) -> str | None:
        """Submit (or re-submit) an exam; the server dedups on local_id.

        Returns:
            The server id of the stored record, when the response carries one
        """
        payload = await self.transport.post(SUBMIT_PATH, json=request.to_wire())
        if isinstance(payload, dict) and payload.get("id") is not None:
            return str(payload["id"])
        return None

    async def is_reachable(self, timeout: float) -> bool:
        return await self.transport.probe(HEALTH_PATH, timeout=timeout)
