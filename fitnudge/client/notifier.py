from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional


@dataclass
class NotificationAction:
    action: str
    title: str


@dataclass
class LocalNotification:
    title: str
    body: str
    tag: str
    data: Dict[str, Any] = field(default_factory=dict)
    actions: List[NotificationAction] = field(default_factory=list)


class Notifier:
    """Displays local notifications and opens app views on the device."""

    async def show(self, notification: LocalNotification) -> None:
        raise NotImplementedError

    async def open_view(self, url: str) -> None:
        raise NotImplementedError


class CallbackNotifier(Notifier):
    def __init__(
        self,
        on_show: Optional[Callable[[LocalNotification], Awaitable[None]]] = None,
        on_open: Optional[Callable[[str], Awaitable[None]]] = None,
    ):
        self.on_show = on_show
        self.on_open = on_open
        self.shown: List[LocalNotification] = []
        self.opened: List[str] = []

    async def show(self, notification):
        self.shown.append(notification)
        if self.on_show is not None:
            await self.on_show(notification)

    async def open_view(self, url):
        self.opened.append(url)
        if self.on_open is not None:
            await self.on_open(url)
