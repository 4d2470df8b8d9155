"""Write coordination for the editor's save channels.

A channel is one independent save pipeline (basics, structure). It owns its
debounce timer, the fingerprint of the last state the authority confirmed,
and the fingerprint of the write currently in flight. Channel state moves
through an explicit machine:

    idle      --schedule-->  scheduled
    error     --schedule-->  scheduled
    scheduled --schedule-->  scheduled   (quiet window restarts)
    scheduled --cancel---->  idle
    idle | scheduled | error --dispatch--> in_flight
    in_flight --schedule-->  in_flight   (timer waits for the write to settle)
    in_flight --success--->  idle, or scheduled if a timer is pending
    in_flight --failure--->  error, or scheduled if a timer is pending

At most one write per channel is in flight. A timer that fires while a write
is in flight waits for it, then re-snapshots and writes only if the state
still differs from what was just saved. A forced flush skips the dedupe
checks but still queues behind an in-flight write.
"""
import asyncio
import enum
import logging
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar

from backoffice.editor.scheduler import DebounceScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChannelState(str, enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    IN_FLIGHT = "in_flight"
    ERROR = "error"


_TRANSITIONS = {
    ChannelState.IDLE: {ChannelState.SCHEDULED, ChannelState.IN_FLIGHT},
    ChannelState.SCHEDULED: {ChannelState.SCHEDULED, ChannelState.IDLE, ChannelState.IN_FLIGHT},
    ChannelState.ERROR: {ChannelState.SCHEDULED, ChannelState.IN_FLIGHT, ChannelState.IDLE},
    ChannelState.IN_FLIGHT: {ChannelState.IN_FLIGHT, ChannelState.IDLE, ChannelState.SCHEDULED, ChannelState.ERROR},
}


def _short(fingerprint: Optional[str]) -> str:
    return fingerprint[:12] if fingerprint else "-"


class WriteChannel(Generic[T]):
    """One save pipeline.

    ``snapshot`` returns the current state to persist, ``fingerprint`` digests
    it, and ``send(snapshot, force)`` writes it. ``send`` may return the
    fingerprint that should count as saved (the structural channel recomputes
    it from the reconciled tree); returning None means "the snapshot I was
    given".
    """

    def __init__(
        self,
        name: str,
        delay: float,
        scheduler: DebounceScheduler,
        snapshot: Callable[[], T],
        fingerprint: Callable[[T], str],
        send: Callable[[T, bool], Awaitable[Optional[str]]],
        on_error: Optional[Callable[[str, Exception], None]] = None,
    ):
        self.name = name
        self.delay = delay
        self._scheduler = scheduler
        self._snapshot = snapshot
        self._fingerprint = fingerprint
        self._send = send
        self._on_error = on_error
        self._lock = asyncio.Lock()
        self.state = ChannelState.IDLE
        self.last_saved: Optional[str] = None
        self.in_flight: Optional[str] = None
        self.last_error: Optional[Exception] = None
        self.write_count = 0
        self._observed: Optional[str] = None

    def _move(self, target: ChannelState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"{self.name}: illegal transition {self.state.value} -> {target.value}")
        if target != self.state:
            logger.debug("%s: %s -> %s", self.name, self.state.value, target.value)
        self.state = target

    def current_fingerprint(self) -> str:
        return self._fingerprint(self._snapshot())

    def is_redundant(self, fingerprint: str) -> bool:
        """Already saved, or already on its way."""
        return fingerprint == self.last_saved or fingerprint == self.in_flight

    def mark_saved(self, fingerprint: str) -> None:
        """Record state known to match the authority (e.g. right after loading)."""
        self.last_saved = fingerprint
        self._observed = fingerprint

    def observe(self) -> None:
        """Take the current state as seen without scheduling anything."""
        self._observed = self.current_fingerprint()

    # Scheduling

    def schedule(self) -> None:
        self._scheduler.schedule(self.name, self.delay, self._fire)
        if self.state != ChannelState.IN_FLIGHT:
            self._move(ChannelState.SCHEDULED)

    def cancel(self) -> None:
        if self._scheduler.cancel(self.name) and self.state == ChannelState.SCHEDULED:
            self._move(ChannelState.IDLE)

    def notify_changed(self) -> None:
        """React to an edit: schedule a write, or drop a pending one that
        the edit made pointless (state is back to what is saved).

        Edits that leave the fingerprint as it was (UI-only state) do
        nothing at all, not even restart a pending timer.
        """
        fingerprint = self.current_fingerprint()
        if fingerprint == self._observed:
            return
        self._observed = fingerprint
        if self.is_redundant(fingerprint):
            logger.debug("%s: %s already saved or in flight", self.name, _short(fingerprint))
            self.cancel()
            return
        self.schedule()

    async def _fire(self) -> None:
        try:
            await self.write()
        except Exception as exc:
            logger.error("%s: background save failed: %s", self.name, exc)
            if self._on_error is not None:
                self._on_error(self.name, exc)

    # Writing

    async def write(self, force: bool = False) -> bool:
        """Persist the current snapshot. Returns whether a write was issued.

        Without ``force`` the write is skipped when the current state is
        already saved or in flight. Failures propagate; the saved fingerprint
        only advances on success, so the next cycle retries.
        """
        if not force and self.is_redundant(self.current_fingerprint()):
            self._settle_skipped()
            return False

        async with self._lock:
            # Re-snapshot: edits may have landed while waiting for the lock
            snapshot = self._snapshot()
            fingerprint = self._fingerprint(snapshot)
            if not force and fingerprint == self.last_saved:
                self._settle_skipped()
                return False

            self._move(ChannelState.IN_FLIGHT)
            self.in_flight = fingerprint
            self.write_count += 1
            logger.debug("%s: sending %s (force=%s)", self.name, _short(fingerprint), force)
            try:
                saved = await self._send(snapshot, force)
            except Exception as exc:
                self.in_flight = None
                self.last_error = exc
                self._move(ChannelState.SCHEDULED if self._scheduler.is_pending(self.name) else ChannelState.ERROR)
                raise
            self.in_flight = None
            self.last_error = None
            self.last_saved = saved or fingerprint
            self._move(ChannelState.SCHEDULED if self._scheduler.is_pending(self.name) else ChannelState.IDLE)
            logger.info("%s: saved %s", self.name, _short(self.last_saved))

        # Edits made while the write was in flight go out on the next cycle
        if not self._scheduler.is_pending(self.name) and not self.is_redundant(self.current_fingerprint()):
            self.schedule()
        return True

    def _settle_skipped(self) -> None:
        if self.state == ChannelState.SCHEDULED and not self._scheduler.is_pending(self.name):
            self._move(ChannelState.IDLE)


class WriteCoordinator:
    """The editor's channels, flushed and cancelled together."""

    def __init__(self, scheduler: Optional[DebounceScheduler] = None):
        self.scheduler = scheduler or DebounceScheduler()
        self.channels: Dict[str, WriteChannel] = {}

    def add(self, channel: WriteChannel) -> WriteChannel:
        self.channels[channel.name] = channel
        return channel

    def __getitem__(self, name: str) -> WriteChannel:
        return self.channels[name]

    def states(self) -> Dict[str, ChannelState]:
        return {name: channel.state for name, channel in self.channels.items()}

    async def flush(self) -> None:
        """Forced write of every channel, in registration order."""
        for channel in self.channels.values():
            channel.cancel()
            await channel.write(force=True)

    def cancel_pending(self) -> None:
        for channel in self.channels.values():
            channel.cancel()

    async def drain(self) -> None:
        await self.scheduler.drain()
