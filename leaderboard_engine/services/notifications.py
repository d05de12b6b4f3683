"""
Notification trigger: fire-and-forget messages to users.

Event kinds
-----------
  overtaken     — sent to each user the submitter just passed
  rank_changed  — sent when a position check reports movement

Delivery is best-effort. `safe_notify` logs and absorbs any failure so that
engine state never depends on a notification going out.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventKind:
    OVERTAKEN    = "overtaken"
    RANK_CHANGED = "rank_changed"


class Notifier(Protocol):
    def notify(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default notifier; writes one INFO line per event."""

    def notify(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None:
        logger.info("notify user=%s kind=%s payload=%s", user_id, event_kind, payload)


class RecordingNotifier:
    """Keeps every event in memory; for local runs and tests."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    def notify(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None:
        self.sent.append((user_id, event_kind, payload))


def safe_notify(notifier: Notifier, user_id: str, event_kind: str, payload: dict[str, Any]) -> bool:
    try:
        notifier.notify(user_id, event_kind, payload)
    except Exception:
        logger.warning("Notification %s to %s failed", event_kind, user_id, exc_info=True)
        return False
    return True
