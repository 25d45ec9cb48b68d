"""Connectivity tracking for the remote record store."""
from __future__ import annotations

import logging
from threading import Event, Lock, Thread
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class HealthProbe(Protocol):
    """Anything able to answer a single liveness probe."""

    def is_online(self) -> bool:
        ...


class PeriodicWorker(Thread):
    """Daemon thread invoking ``action`` every ``interval`` seconds until stopped."""

    def __init__(self, action: Callable[[], object], *, interval: float, name: Optional[str] = None) -> None:
        super().__init__(daemon=True, name=name)
        self._action = action
        self._interval = interval
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        while not self._stop_event.wait(self._interval):
            try:
                self._action()
            except Exception:
                logger.exception("Periodic worker action failed", extra={"worker": self.name})


class ConnectivityMonitor:
    """Caches the result of the most recent health probe.

    Each probe is a single attempt without retries. Recovery comes only from
    later probes, which the owner schedules with a :class:`PeriodicWorker`.
    Until the first probe completes the status is unknown and callers are
    routed as if the store were reachable.
    """

    def __init__(self, probe: HealthProbe, *, probe_on_start: bool = True) -> None:
        self._probe = probe
        self._lock = Lock()
        self._online: Optional[bool] = None
        self._listeners: List[Callable[[bool], None]] = []
        if probe_on_start:
            self.check_status()

    @property
    def status(self) -> Optional[bool]:
        """``True``/``False`` after a probe, ``None`` while still unknown."""

        with self._lock:
            return self._online

    @property
    def is_online(self) -> bool:
        return self.status is not False

    def add_listener(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        """Call ``listener`` with the new flag whenever it flips."""

        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def check_status(self) -> bool:
        try:
            online = bool(self._probe.is_online())
        except Exception:
            logger.warning("Health probe raised; treating record store as offline", exc_info=True)
            online = False

        with self._lock:
            previous = self._online
            self._online = online
            listeners = list(self._listeners) if previous != online else []

        if previous != online:
            logger.info(
                "Record store connectivity changed",
                extra={"online": online, "previous": previous},
            )
        for listener in listeners:
            try:
                listener(online)
            except Exception:
                logger.exception("Connectivity listener failed")
        return online


__all__ = ["ConnectivityMonitor", "HealthProbe", "PeriodicWorker"]
