"""Reminder models, queue and delivery."""

from .identity import IdentityCache
from .models import PendingReminder, Reminder
from .queue import ReminderQueue

__all__ = ["IdentityCache", "PendingReminder", "Reminder", "ReminderQueue"]
