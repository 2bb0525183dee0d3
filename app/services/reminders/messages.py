from __future__ import annotations

import html

from app.services.reminders.models import ActivityKind, Rule, RuleKind

ACTIVITY_LABELS: dict[str, str] = {
    ActivityKind.BREASTFEEDING.value: "Breastfeeding",
    ActivityKind.BOTTLE.value: "Bottle",
    ActivityKind.SLEEP.value: "Sleep",
    ActivityKind.BATH.value: "Bath",
    ActivityKind.WALK.value: "Walk",
    ActivityKind.DIAPER.value: "Diaper",
    ActivityKind.MEDICINE.value: "Medicine",
    ActivityKind.ACTIVITY.value: "Activity",
    ActivityKind.BURP.value: "Burp",
}


def activity_label(kind: str) -> str:
    return ACTIVITY_LABELS.get(kind, kind or "Activity")


def format_interval(minutes: float) -> str:
    """180 -> '3h', 150 -> '2h 30m', 45 -> '45m'."""
    total = int(minutes)
    hours, mins = divmod(total, 60)
    if hours > 0:
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    return f"{mins}m"


def compose(rule: Rule) -> tuple[str, str]:
    """Title and body for a firing rule; stored overrides win over defaults."""
    label = activity_label(rule.activity_kind)
    title = rule.title or f"Reminder: {label}"

    if rule.message:
        return title, rule.message

    if rule.kind is RuleKind.INTERVAL:
        interval = getattr(rule.schedule, "interval_minutes", None) or 0
        return title, f"⏰ {format_interval(interval)} since the last {label.lower()}"
    return title, f"⏰ Time for: {label}"


def format_chat_text(title: str, message: str) -> str:
    """HTML body for the chat channel: bold title, blank line, message."""
    return f"<b>{html.escape(title)}</b>\n\n{html.escape(message)}"
