"""
Processing notifications emitted while a transcript moves through the pipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..utils.logging_config import get_logger

logger = get_logger(__name__)

PROCESSING = 'processing'
PROGRESS = 'progress'
COMPLETE = 'complete'
ERROR = 'error'


@dataclass
class Notification:
    event: str
    account_id: str
    transcript_id: str
    message: str = ''
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationSink(ABC):
    """Destination for pipeline events (websocket broadcaster, queue, log)."""

    @abstractmethod
    def emit(self, notification: Notification) -> None:
        """Deliver one notification. Must not raise."""

    def processing(self, account_id: str, transcript_id: str, message: str = 'Processing started') -> None:
        self._safe_emit(Notification(PROCESSING, account_id, transcript_id, message))

    def progress(self, account_id: str, transcript_id: str, stage: str, message: str = '', **data: Any) -> None:
        self._safe_emit(Notification(PROGRESS, account_id, transcript_id, message or stage, {'stage': stage, **data}))

    def complete(self, account_id: str, transcript_id: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._safe_emit(Notification(COMPLETE, account_id, transcript_id, 'Processing complete', data or {}))

    def error(self, account_id: str, transcript_id: str, message: str, code: str = '') -> None:
        self._safe_emit(Notification(ERROR, account_id, transcript_id, message, {'code': code}))

    def _safe_emit(self, notification: Notification) -> None:
        try:
            self.emit(notification)
        except Exception as e:
            logger.warning(f'Failed to deliver {notification.event} notification for transcript {notification.transcript_id}: {e}')


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the log."""

    def emit(self, notification: Notification) -> None:
        logger.info(f'[{notification.event}] transcript={notification.transcript_id} account={notification.account_id} '
                    f'{notification.message} {notification.data or ""}'.rstrip())

