"""Notification module."""

from .sms import RESPONSE_CODES, SMS_API_URL, INotifier, SmsNotifier

__all__ = ["INotifier", "RESPONSE_CODES", "SMS_API_URL", "SmsNotifier"]
