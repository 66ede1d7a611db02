"""Timing state machine that drives vendor polls.

States move ``disarmed -> armed -> polling -> armed``. A credential update
(re-)arms the scheduler with a fresh alarm and triggers one immediate poll.
A rejected credential hands off to the recovery controller, which disarms.

Only one alarm exists at any time, and only one poll is in flight: ticks that
land while a poll is outstanding are dropped, and a credential update that
lands during a poll queues a single follow-up poll with the new credential.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set

from app.schemas import Credential, SchedulerState
from datastore.credentials import CredentialStore
from services.recovery import RecoveryController
from services.vendor_client import AuthExpired, PollOutcome, Success, TransientFailure, VendorClient

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 300.0

TickCallback = Callable[[], Awaitable[None]]
SnapshotHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class Alarm(Protocol):
    def cancel(self) -> None: ...


AlarmFactory = Callable[[float, TickCallback], Alarm]


class AsyncioAlarm:
    """Periodic alarm on the running event loop."""

    def __init__(self, interval: float, callback: TickCallback) -> None:
        self.interval = interval
        self._callback = callback
        self._loop = asyncio.get_running_loop()
        self._cancelled = False
        self._tasks: Set[asyncio.Task[None]] = set()
        self._handle = self._loop.call_later(interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._handle = self._loop.call_later(self.interval, self._fire)
        task = self._loop.create_task(self._callback())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()


class PollScheduler:
    def __init__(
        self,
        credentials: CredentialStore,
        client: VendorClient,
        on_snapshot: SnapshotHandler,
        recovery: RecoveryController,
        interval: float = DEFAULT_INTERVAL,
        alarm_factory: AlarmFactory = AsyncioAlarm,
    ) -> None:
        self.credentials = credentials
        self.client = client
        self.on_snapshot = on_snapshot
        self.recovery = recovery
        self.interval = interval
        self._alarm_factory = alarm_factory

        self._state = SchedulerState.disarmed
        self._alarm: Optional[Alarm] = None
        self._lock = asyncio.Lock()
        self._in_flight = False
        self._follow_up = False
        self._tasks: Set[asyncio.Task[None]] = set()

        recovery.bind(self)

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def alarm_active(self) -> bool:
        return self._alarm is not None

    async def on_credential_update(self) -> Optional[asyncio.Task[None]]:
        """Arm (or re-arm) after a credential was stored.

        Returns the task running the immediate poll, or None when the poll was
        folded into one already in flight or there is no credential to use.
        """
        async with self._lock:
            if self.credentials.current() is None:
                logger.warning("Credential update without a stored credential; staying disarmed")
                return None
            self._replace_alarm()
            if self._in_flight:
                self._state = SchedulerState.polling
                self._follow_up = True
                logger.info("Re-armed during an in-flight poll; follow-up poll queued")
                return None
            self._state = SchedulerState.armed
            logger.info("Armed poll alarm", extra={"state": self._state.value})

        return self._spawn_poll("credential update")

    async def tick(self) -> None:
        """Alarm callback; safe to call at any time.

        The poll runs in a task owned by the scheduler so that
        :meth:`shutdown` cancels it along with every other poll.
        """
        await self._spawn_poll("alarm tick")

    async def disarm(self, only_if_no_credential: bool = False) -> bool:
        """Cancel the alarm and stop polling.

        With ``only_if_no_credential`` the scheduler stays armed when a newer
        credential has been stored in the meantime. Returns whether it disarmed.
        """
        async with self._lock:
            if only_if_no_credential and self.credentials.current() is not None:
                logger.info("Newer credential present; not disarming")
                return False
            self._cancel_alarm()
            self._follow_up = False
            self._state = SchedulerState.disarmed
        logger.info("Disarmed poll alarm", extra={"state": SchedulerState.disarmed.value})
        return True

    async def shutdown(self) -> None:
        async with self._lock:
            self._cancel_alarm()
            self._state = SchedulerState.disarmed
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn_poll(self, trigger: str) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self._guarded_poll(trigger))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _replace_alarm(self) -> None:
        self._cancel_alarm()
        self._alarm = self._alarm_factory(self.interval, self.tick)

    def _cancel_alarm(self) -> None:
        if self._alarm is not None:
            self._alarm.cancel()
            self._alarm = None

    async def _guarded_poll(self, trigger: str) -> None:
        try:
            await self._run_poll(trigger)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Poll cycle failed", extra={"reason": trigger})

    async def _claim(self, trigger: str) -> Optional[Credential]:
        async with self._lock:
            if self._state is SchedulerState.disarmed:
                logger.debug("Ignoring %s while disarmed", trigger)
                return None
            if self._in_flight:
                logger.info("Poll already in flight; %s coalesced", trigger)
                return None
            credential = self.credentials.current()
            if credential is None:
                self._cancel_alarm()
                self._state = SchedulerState.disarmed
                logger.warning("No credential for %s; disarmed", trigger)
                return None
            self._in_flight = True
            self._state = SchedulerState.polling
            return credential

    async def _next_follow_up(self) -> Optional[Credential]:
        async with self._lock:
            if not self._follow_up or self._state is SchedulerState.disarmed:
                self._follow_up = False
                return None
            self._follow_up = False
            return self.credentials.current()

    async def _run_poll(self, trigger: str) -> None:
        credential = await self._claim(trigger)
        if credential is None:
            return
        try:
            while credential is not None:
                outcome = await self.client.poll(credential)
                await self._handle_outcome(credential, outcome)
                credential = await self._next_follow_up()
        finally:
            async with self._lock:
                self._in_flight = False
                if self._state is SchedulerState.polling:
                    self._state = SchedulerState.armed

    async def _handle_outcome(self, credential: Credential, outcome: PollOutcome) -> None:
        extra = {"account_id": credential.account_id}
        if isinstance(outcome, Success):
            await self.on_snapshot(outcome.snapshot)
        elif isinstance(outcome, TransientFailure):
            # The next tick is the retry.
            logger.warning("Poll failed transiently", extra={**extra, "reason": outcome.reason})
        elif isinstance(outcome, AuthExpired):
            logger.warning("Credential expired", extra={**extra, "status": outcome.status_code})
            await self.recovery.handle_expiry(credential)
