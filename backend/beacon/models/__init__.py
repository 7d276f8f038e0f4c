from .status_page import StatusPage, Incident
from .monitors import Monitor, MonitorStatus
from .subscriber import Subscriber, Subscription
from .notification import QueuedNotification, NotificationChannel
from .setting import Setting


__all__ = [
    "StatusPage",
    "Incident",
    "Monitor",
    "MonitorStatus",
    "Subscriber",
    "Subscription",
    "QueuedNotification",
    "NotificationChannel",
    "Setting",
]
