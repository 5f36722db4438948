"""Periodic note-lock sweep."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.config import get_settings
from ehr_guard.observability import get_observability_logger
from ehr_guard.triggers.notes import lock_expired_notes

logger = logging.getLogger(__name__)


class NoteLockSweeper:
    """Runs ``lock_expired_notes`` in its own transaction on an interval.

    Can run as a background task inside the API process or be invoked once
    from the CLI.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        interval_seconds: Optional[int] = None,
        lock_days: Optional[int] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.lock_sweep_interval_seconds
        self.lock_days = lock_days if lock_days is not None else settings.note_lock_days
        self._running = False
        self.last_run: Optional[datetime] = None
        self.total_locked = 0

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """Sweep once and commit. Returns the number of notes locked."""
        start = time.time()
        async with self.session_factory() as session:
            try:
                notes = await lock_expired_notes(session, now=now, lock_days=self.lock_days)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        self.last_run = datetime.now(timezone.utc)
        self.total_locked += len(notes)
        get_observability_logger().log_lock_sweep(
            [str(note.id) for note in notes],
            duration_ms=(time.time() - start) * 1000,
        )
        return len(notes)

    async def run_loop(self, max_iterations: Optional[int] = None) -> None:
        """Run the sweep loop.

        Args:
            max_iterations: Maximum iterations (None for infinite)
        """
        self._running = True
        iteration = 0

        logger.info(f"Starting note-lock sweeper (every {self.interval_seconds}s)")

        while self._running:
            if max_iterations and iteration >= max_iterations:
                break

            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Note-lock sweep failed: {e}")

            iteration += 1
            if max_iterations and iteration >= max_iterations:
                break
            await asyncio.sleep(self.interval_seconds)

        self._running = False
        logger.info("Note-lock sweeper stopped")

    def stop(self) -> None:
        """Stop the sweep loop."""
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running
