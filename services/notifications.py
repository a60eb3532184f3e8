"""
Notification layer

Server-side stand-in for the web client's toast messages. A Notifier lives
for one request; everything it records is returned with the response and
written to the log.
"""

import logging
from typing import List

from models.workflow import Notification, NotificationLevel

logger = logging.getLogger(__name__)


class Notifier:

    def __init__(self):
        self.notifications: List[Notification] = []

    def _push(self, level: NotificationLevel, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        self.notifications.append(notification)
        return notification

    def success(self, message: str) -> Notification:
        logger.info(message)
        return self._push(NotificationLevel.SUCCESS, message)

    def info(self, message: str) -> Notification:
        logger.info(message)
        return self._push(NotificationLevel.INFO, message)

    def error(self, message: str) -> Notification:
        logger.error(message)
        return self._push(NotificationLevel.ERROR, message)

    @property
    def errors(self) -> List[Notification]:
        return [n for n in self.notifications if n.level == NotificationLevel.ERROR]
