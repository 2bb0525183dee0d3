import pytest

from app.services.reminders.errors import RuleParseError
from app.services.reminders.messages import compose, format_chat_text, format_interval
from app.services.reminders.models import IntervalSchedule, RuleKind, TimeSchedule, parse_rule
from conftest import make_interval_rule, make_time_rule


def _row(**overrides):
    row = {
        "id": "r1",
        "user_id": "user-1",
        "notification_type": "time",
        "activity_type": "bath",
        "notification_time": "19:30",
        "repeat_days": [0, 6, "3", 9, "x"],
        "enabled": True,
    }
    row.update(overrides)
    return row


def test_parse_time_rule():
    rule = parse_rule(_row())
    assert rule.kind is RuleKind.TIME
    assert isinstance(rule.schedule, TimeSchedule)
    assert str(rule.schedule.time_of_day) == "19:30"
    # out-of-range and non-numeric days are dropped
    assert rule.schedule.repeat_days == frozenset({0, 3, 6})
    assert rule.title is None


def test_parse_interval_rule_keeps_bad_payload_as_none():
    rule = parse_rule(_row(notification_type="interval", interval_minutes="abc"))
    assert rule.kind is RuleKind.INTERVAL
    assert isinstance(rule.schedule, IntervalSchedule)
    assert rule.schedule.interval_minutes is None


@pytest.mark.parametrize("minutes", [0, -5, True, None])
def test_non_positive_interval_is_unusable(minutes):
    rule = parse_rule(_row(notification_type="interval", interval_minutes=minutes))
    assert rule.schedule.interval_minutes is None


@pytest.mark.parametrize("overrides", [{"id": None}, {"user_id": ""}, {"notification_type": "weekly"}])
def test_unusable_rows_raise(overrides):
    with pytest.raises(RuleParseError):
        parse_rule(_row(**overrides))


def test_blank_overrides_fall_back_to_defaults():
    rule = parse_rule(_row(title="  ", message=""))
    assert compose(rule) == ("Reminder: Bath", "⏰ Time for: Bath")


@pytest.mark.parametrize(
    "minutes, expected",
    [(180, "3h"), (150, "2h 30m"), (45, "45m"), (60.5, "1h")],
)
def test_format_interval(minutes, expected):
    assert format_interval(minutes) == expected


def test_interval_default_message():
    rule = make_interval_rule(minutes=150, activity_kind="diaper")
    assert compose(rule) == ("Reminder: Diaper", "⏰ 2h 30m since the last diaper")


def test_unknown_activity_kind_is_shown_verbatim():
    title, _ = compose(make_time_rule(activity_kind="tummy_time"))
    assert title == "Reminder: tummy_time"


def test_chat_text_layout():
    assert format_chat_text("T", "M") == "<b>T</b>\n\nM"
