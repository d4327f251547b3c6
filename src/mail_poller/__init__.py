"""Mail Poller - schedule periodic mail checks across independently configured accounts."""

from mail_poller.core.models import AccountRow, NewMailEvent, Selection, SyncReport, WakeSnapshot
from mail_poller.scheduling.notifications import NotificationCoalescer
from mail_poller.scheduling.registry import SyncRegistry
from mail_poller.scheduling.scheduler import Scheduler
from mail_poller.scheduling.watchdog import WatchdogTimer
from mail_poller.service.driver import SyncDriver

__all__ = [
    "AccountRow",
    "NewMailEvent",
    "NotificationCoalescer",
    "Scheduler",
    "Selection",
    "SyncDriver",
    "SyncRegistry",
    "SyncReport",
    "WakeSnapshot",
    "WatchdogTimer",
]
