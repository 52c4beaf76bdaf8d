"""Observer channel the engine publishes snapshots on."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


FACTORS_UPDATED = "factors_updated"
SCORES_UPDATED = "scores_updated"
CORRELATION_UPDATED = "correlation_updated"
PREDICTIONS_GENERATED = "predictions_generated"
EXECUTIVE_METRICS_UPDATED = "executive_metrics_updated"
QUANTITATIVE_ANALYSIS_UPDATED = "quantitative_analysis_updated"
ENGINE_STARTED = "engine_started"
ENGINE_STOPPED = "engine_stopped"

EVENTS = (
    FACTORS_UPDATED,
    SCORES_UPDATED,
    CORRELATION_UPDATED,
    PREDICTIONS_GENERATED,
    EXECUTIVE_METRICS_UPDATED,
    QUANTITATIVE_ANALYSIS_UPDATED,
    ENGINE_STARTED,
    ENGINE_STOPPED,
)

Handler = Callable[[str, Any], None]


class EventBus:
    """
    Synchronous publish/subscribe. Handlers receive ``(event, payload)``
    on the publishing thread; a failing handler is logged and the rest
    still run.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event: str, handler: Handler) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}")
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        with self._lock:
            try:
                self._handlers.get(event, []).remove(handler)
            except ValueError:
                pass

    def publish(self, event: str, payload: Any = None) -> int:
        """Deliver to every handler; returns how many ran without raising."""
        with self._lock:
            handlers = list(self._handlers.get(event, []))
        delivered = 0
        for handler in handlers:
            try:
                handler(event, payload)
            except Exception:
                logger.exception("Handler %r failed on %s", handler, event)
                continue
            delivered += 1
        return delivered
