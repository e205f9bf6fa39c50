"""
Background Due Reminder Service

Simple asyncio-based service that periodically scans open tasks and pushes:
- task_due_reminder when a task's due date comes within the reminder window
- task_overdue when a task's due date passes

Each task is notified once per entry into a state. The record of what was
already sent lives in memory only, so a restart may repeat a reminder and an
offline assignee never receives a backlog.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import async_session_maker
from ..schemas.task import TaskResponse
from ..websocket.handlers import handle_task_due_reminder, handle_task_overdue
from ..websocket.manager import ConnectionManager
from .task_service import get_open_tasks_due_before

logger = logging.getLogger(__name__)


class DueReminderService:
    """
    Asyncio-based reminder loop bound to one ConnectionManager.

    Runs with the same lifecycle as the WebSocket layer: started and stopped
    from the application lifespan.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        session_factory: Callable[[], AsyncSession] = async_session_maker,
        interval_seconds: Optional[float] = None,
        window_hours: Optional[float] = None,
    ) -> None:
        self._manager = connection_manager
        self._session_factory = session_factory
        if interval_seconds is None:
            interval_seconds = settings.due_reminder_interval_seconds
        if window_hours is None:
            window_hours = settings.due_reminder_window_hours
        self._interval = interval_seconds
        self._window = timedelta(hours=window_hours)
        self._task: Optional[asyncio.Task] = None
        self._running = False
        # Task ids currently inside each state, as of the previous scan
        self._due_soon: set[UUID] = set()
        self._overdue: set[UUID] = set()

    async def start(self) -> None:
        """Start the background reminder loop."""
        self._running = True
        self._task = asyncio.create_task(self._reminder_loop())
        logger.info(
            f"Due reminder service started (every {self._interval}s, "
            f"window {self._window})"
        )

    async def stop(self) -> None:
        """Stop the reminder service."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Due reminder service stopped")

    @property
    def is_running(self) -> bool:
        """Check if service is running."""
        return self._running

    async def _reminder_loop(self) -> None:
        """Scan immediately, then every interval."""
        while self._running:
            try:
                await self.run_now()
            except Exception as e:
                logger.error(f"Due reminder scan error: {e}", exc_info=True)

            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break

    async def run_now(self, now: Optional[datetime] = None) -> dict:
        """
        Scan open tasks once and send the reminders that became due.

        Returns:
            dict: Counts of reminders sent and when the scan ran
        """
        now = now or datetime.utcnow()

        async with self._session_factory() as db:
            tasks = await get_open_tasks_due_before(db, now + self._window)
            responses = {task.id: TaskResponse.from_task(task) for task in tasks}

        due_soon = {tid for tid, task in responses.items() if task.due_date > now}
        overdue = {tid for tid, task in responses.items() if task.due_date <= now}

        reminders_sent = 0
        for task_id in due_soon - self._due_soon:
            handle_task_due_reminder(responses[task_id], self._manager)
            reminders_sent += 1

        overdue_sent = 0
        for task_id in overdue - self._overdue:
            handle_task_overdue(responses[task_id], self._manager)
            overdue_sent += 1

        self._due_soon = due_soon
        self._overdue = overdue

        if reminders_sent or overdue_sent:
            logger.info(
                f"Due reminder scan: {reminders_sent} due soon, {overdue_sent} overdue"
            )

        return {
            "due_reminders": reminders_sent,
            "overdue_notices": overdue_sent,
            "run_at": now.isoformat(),
        }
