"""Rendering of reminder message bodies."""

from string import Template
from typing import Any, Dict, Optional

from .models import PendingReminder


def template_context(reminder: PendingReminder, attendees: str) -> Dict[str, Any]:
    """Values available to reminder templates."""
    return {
        "event_id": reminder.event_uid,
        "summary": reminder.summary or "",
        "description": reminder.description or "",
        "location": reminder.location or "",
        "minutes_before": reminder.minutes_before,
        "attendees": attendees,
    }


def render_default(context: Dict[str, Any]) -> str:
    """Markdown body used when a reminder has no custom template.

    Example:
        **Standup** starts in 5 minutes at Room 1 ─ Alice, Bob
    """
    line = f"**{context['summary']}**"
    if context["minutes_before"] > 0:
        line += f" starts in {context['minutes_before']} minutes"
    if context["location"]:
        line += f" at {context['location']}"
    if context["attendees"]:
        line += f" ─ {context['attendees']}"

    if context["description"]:
        line += f"\n\n**Description:** {context['description']}"
    return line


def render_reminder(reminder: PendingReminder, attendees: str) -> str:
    """Render the message body for a reminder.

    Custom templates use ``$name`` placeholders (``$summary``, ``$description``,
    ``$location``, ``$minutes_before``, ``$attendees``, ``$event_id``); unknown
    placeholders are left as they are.
    """
    context = template_context(reminder, attendees)
    template: Optional[str] = reminder.template
    if not template:
        return render_default(context)
    return Template(template).safe_substitute(context)
