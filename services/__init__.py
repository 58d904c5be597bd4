# Services Module for Dexter Settlement Engine
# Contains business logic services

from services.notification_service import NotificationService, NotificationType

__all__ = [
    'NotificationService',
    'NotificationType',
]
