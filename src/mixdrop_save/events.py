from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

SAVE_SUCCEEDED = "save_succeeded"
SAVE_FAILED = "save_failed"
LOAD_SUCCEEDED = "load_succeeded"
LOAD_FAILED = "load_failed"
CLOUD_SYNC_COMPLETED = "cloud_sync_completed"
VALIDATION_SUCCEEDED = "validation_succeeded"
VALIDATION_FAILED = "validation_failed"
MIGRATION_SUCCEEDED = "migration_succeeded"
MIGRATION_FAILED = "migration_failed"

Callback = Callable[[Optional[dict]], None]


class EventBus:
    """Synchronous pub/sub bus for save lifecycle notifications.

    Subscribers run on the publishing thread. A failing subscriber is logged
    and does not affect the operation that published the event.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callback]] = {}

    def subscribe(self, event_name: str, callback: Callback) -> None:
        logger.debug("Subscribing to event '%s': %s", event_name, callback)
        self._subscribers.setdefault(event_name, []).append(callback)

    def unsubscribe(self, event_name: str, callback: Callback) -> bool:
        callbacks = self._subscribers.get(event_name, [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def publish(self, event_name: str, payload: Optional[dict] = None) -> None:
        callbacks = list(self._subscribers.get(event_name, []))
        logger.debug("Publishing event '%s' to %d subscribers", event_name, len(callbacks))
        for cb in callbacks:
            try:
                cb(payload)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Error in event subscriber for '%s': %s", event_name, exc)
