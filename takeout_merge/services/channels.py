"""Signal channels between the background pipeline and its foreground.

Two one-way queues: events flow from the pipeline thread to whoever drives it
(CLI, HTTP dashboard, tests) and acknowledgments flow back. The pipeline only
ever blocks in `wait_for_ack`, and at most one error is outstanding.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union
import queue
import threading


@dataclass(frozen=True)
class ErrorEvent:
    path: Path
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "error", "path": str(self.path), "error": self.error}


@dataclass(frozen=True)
class DoneEvent:
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "done", "summary": dict(self.summary)}


@dataclass(frozen=True)
class FailedEvent:
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "failed", "error": self.error}


@dataclass(frozen=True)
class CancelledEvent:
    def to_dict(self) -> Dict[str, Any]:
        return {"event": "cancelled"}


PipelineEvent = Union[ErrorEvent, DoneEvent, FailedEvent, CancelledEvent]


@dataclass(frozen=True)
class Acknowledge:
    retry: bool = False


_CANCEL = object()


class PipelineChannels:
    def __init__(self):
        self._events: "queue.Queue[PipelineEvent]" = queue.Queue()
        self._acks: "queue.Queue[object]" = queue.Queue()
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._awaiting_ack = False

    # -- background side --------------------------------------------------

    def emit(self, event: PipelineEvent,
             before_publish: Optional[Callable[[], None]] = None) -> None:
        """Queue `event` for the foreground.

        An ErrorEvent opens the acknowledgment window first; `before_publish`
        runs after that and before the event becomes visible.
        """
        if isinstance(event, ErrorEvent):
            with self._lock:
                if self._awaiting_ack:
                    raise RuntimeError("An error is already waiting for acknowledgment")
                self._awaiting_ack = True
        if before_publish is not None:
            before_publish()
        self._events.put(event)

    def wait_for_ack(self) -> Optional[Acknowledge]:
        """Block until the foreground acknowledges. Returns None if cancelled."""
        item = self._acks.get()
        with self._lock:
            self._awaiting_ack = False
        if item is _CANCEL:
            return None
        return item  # type: ignore[return-value]

    @property
    def cancel_requested(self) -> bool:
        return self._cancelled.is_set()

    # -- foreground side --------------------------------------------------

    def poll_event(self, timeout: float | None = 0) -> Optional[PipelineEvent]:
        """Return the next event, or None if none arrives within `timeout`.

        `timeout=0` never blocks; `timeout=None` blocks until an event arrives.
        """
        try:
            if timeout == 0:
                return self._events.get_nowait()
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    @property
    def awaiting_ack(self) -> bool:
        with self._lock:
            return self._awaiting_ack

    def acknowledge(self, retry: bool = False) -> None:
        with self._lock:
            if not self._awaiting_ack:
                raise RuntimeError("No error is waiting for acknowledgment")
            self._awaiting_ack = False
            self._acks.put(Acknowledge(retry=retry))

    def cancel(self) -> None:
        """Ask the pipeline to stop before its next pair (or now, if paused)."""
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        self._acks.put(_CANCEL)
