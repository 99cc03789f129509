"""ReminderBot - CalDAV calendar sync with Matrix room reminders."""

__version__ = "1.0.0"
__author__ = "ReminderBot Team"
__email__ = "support@reminderbot.local"
__description__ = "Syncs recurring CalDAV events and posts reminders into Matrix rooms"

# Package metadata
__all__ = [
    "__author__",
    "__description__",
    "__email__",
    "__version__",
]
