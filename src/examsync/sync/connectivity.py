"""Connectivity monitor.

Polls the remote health endpoint and delivers online/offline transitions
to the SyncEngine.
"""

from __future__ import annotations

import asyncio

import structlog

from examsync.config.app_config import SyncConfig
from examsync.sync.engine import SyncEngine
from examsync.sync.remote import RemoteStore

logger = structlog.get_logger(__name__)


class ConnectivityMonitor:
    """Turns periodic reachability probes into engine transitions."""

    def __init__(self, remote: RemoteStore, engine: SyncEngine, config: SyncConfig):
        self.remote = remote
        self.engine = engine
        self.config = config
        self._task: asyncio.Task | None = None
        self._last: bool | None = None

    async def check(self) -> bool:
        """Probe once; notify the engine only when the state changed.

        A first probe that finds the engine already online resumes queued work.
        """
        online = await self.remote.is_reachable(timeout=self.config.connectivity_timeout_seconds)

        if online != self._last:
            logger.info("connectivity.changed", online=online)
            first_probe = self._last is None
            self._last = online
            if online != self.engine.is_online:
                await self.engine.on_connectivity_change(online)
            elif online and first_probe:
                await self.engine.resume()

        return online

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.config.connectivity_poll_seconds)
