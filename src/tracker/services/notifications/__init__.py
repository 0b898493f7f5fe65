"""Outbound arrival notifications."""

from .dispatcher import NotificationDispatcher
from .message import ArrivalNotification, build_arrival_notification, maps_link, render_arrival_message
from .senders import LoggingSender, NotificationSender, WhatsAppCloudSender, build_sender

__all__ = [
    "ArrivalNotification",
    "LoggingSender",
    "NotificationDispatcher",
    "NotificationSender",
    "WhatsAppCloudSender",
    "build_arrival_notification",
    "build_sender",
    "maps_link",
    "render_arrival_message",
]
