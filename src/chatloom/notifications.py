"""User-visible notification channel."""

import logging
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


NotificationListener = Callable[[Notification], None]


class NotificationChannel:
    """Fans notifications out to subscribers and keeps a history."""

    def __init__(self) -> None:
        self._listeners: list[NotificationListener] = []
        self.history: list[Notification] = []

    def subscribe(self, listener: NotificationListener) -> None:
        self._listeners.append(listener)

    def notify(
        self,
        title: str,
        description: str,
        variant: Literal["default", "destructive"] = "default",
    ) -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        self.history.append(notification)
        logger.info("Notification: %s - %s", title, description)
        for listener in list(self._listeners):
            listener(notification)
        return notification
