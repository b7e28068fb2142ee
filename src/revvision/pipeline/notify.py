"""User-facing notices (analysis complete, processing failed, ...)."""

from __future__ import annotations

import logging
from collections import deque

from revvision.shared.enums import NoticeLevel
from revvision.shared.models import Notice

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.WARNING,
}


class Notifier:
    """Bounded in-memory notice feed, drained by the browser."""

    def __init__(self, *, history: int = 200) -> None:
        self._notices: deque[Notice] = deque(maxlen=history)

    def push(
        self,
        title: str,
        message: str,
        *,
        level: NoticeLevel = NoticeLevel.INFO,
        entry_id: str | None = None,
    ) -> Notice:
        notice = Notice(level=level, title=title, message=message, entry_id=entry_id)
        self._notices.append(notice)
        logger.log(_LOG_LEVELS[level], "%s: %s", title, message)
        return notice

    def latest(self, entry_id: str | None = None) -> Notice | None:
        for notice in reversed(self._notices):
            if entry_id is None or notice.entry_id == entry_id:
                return notice
        return None

    def snapshot(self) -> list[Notice]:
        return list(self._notices)

    def drain(self) -> list[Notice]:
        notices = list(self._notices)
        self._notices.clear()
        return notices
