"""Typed progress events shared by the scheduler and analytics passes."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional

logger = logging.getLogger(__name__)

EventType = Literal["start", "progress", "complete", "error"]

BUILD_ROUTES = "build_routes"
CALCULATE_TIME_BUCKETS = "calculate_time_buckets"
CALCULATE_DECILES = "calculate_deciles"
CALCULATE_REACHABILITY = "calculate_reachability"
SIMPLIFY_ROUTES = "simplify_routes"


@dataclass(slots=True)
class ProgressEvent:
    stage: str
    type: EventType
    current: Optional[int] = None
    total: Optional[int] = None
    message: Optional[str] = None
    error: Optional[BaseException] = None
    metadata: dict[str, Any] = field(default_factory=dict)


ProgressCallback = Callable[[ProgressEvent], Any]


class ProgressEmitter:
    """Fire-and-forget pub/sub: a failing or slow subscriber never blocks the emitter.

    Coroutine subscribers are scheduled on the running loop instead of awaited.
    """

    def __init__(self) -> None:
        self._subscribers: list[ProgressCallback] = []
        self._pending: set[asyncio.Future] = set()

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: ProgressEvent) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception:
                logger.exception(f"Progress subscriber failed on {event.stage}:{event.type}")

    def emit_start(self, stage: str, total: int | None = None, message: str | None = None, metadata: dict | None = None) -> None:
        self.emit(ProgressEvent(stage, "start", total=total, message=message, metadata=metadata or {}))

    def emit_progress(
        self,
        stage: str,
        current: int,
        total: int,
        message: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        self.emit(ProgressEvent(stage, "progress", current=current, total=total, message=message, metadata=metadata or {}))

    def emit_complete(self, stage: str, message: str | None = None, metadata: dict | None = None) -> None:
        self.emit(ProgressEvent(stage, "complete", message=message, metadata=metadata or {}))

    def emit_error(self, stage: str, error: BaseException, message: str | None = None) -> None:
        self.emit(ProgressEvent(stage, "error", error=error, message=message))

    def _schedule(self, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Coroutine progress subscriber ignored: no running event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        future = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)


class ProgressTracker:
    """Subscriber that logs stage boundaries and keeps the latest event per stage."""

    def __init__(self) -> None:
        self.latest: dict[str, ProgressEvent] = {}

    def __call__(self, event: ProgressEvent) -> None:
        self.latest[event.stage] = event
        if event.type == "start":
            logger.info(f"[{event.stage}] started{f': {event.message}' if event.message else ''}")
        elif event.type == "complete":
            logger.info(f"[{event.stage}] complete{f': {event.message}' if event.message else ''}")
        elif event.type == "error":
            logger.error(f"[{event.stage}] failed: {event.error}")
        else:
            logger.debug(f"[{event.stage}] {event.current}/{event.total}")

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {
            stage: {
                "type": event.type,
                "current": event.current,
                "total": event.total,
                "message": event.message,
                "error": str(event.error) if event.error else None,
                "metadata": event.metadata,
            }
            for stage, event in self.latest.items()
        }


def create_progress_emitter(tracker: ProgressTracker | None = None) -> ProgressEmitter:
    emitter = ProgressEmitter()
    if tracker is not None:
        emitter.subscribe(tracker)
    return emitter
