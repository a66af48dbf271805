# tests/test_recurrence_validator.py

from __future__ import annotations

from taskflow.services.recurrence_validator import RecurrenceValidator


def test_valid_weekly_pattern() -> None:
    result = RecurrenceValidator.validate_recurrence_pattern("weekly", {"day_of_week": 0})

    assert result == {"valid": True, "errors": [], "warnings": []}


def test_unknown_kind_is_invalid() -> None:
    result = RecurrenceValidator.validate_recurrence_pattern("hourly")

    assert result["valid"] is False


def test_out_of_range_and_non_integer_details_are_errors() -> None:
    result = RecurrenceValidator.validate_recurrence_pattern(
        "yearly", {"month": 12, "day_of_month": "15", "day_of_week": True}
    )

    assert result["valid"] is False
    assert len(result["errors"]) == 3


def test_detail_for_other_kind_only_warns() -> None:
    result = RecurrenceValidator.validate_recurrence_pattern("daily", {"day_of_month": 3, "color": "red"})

    assert result["valid"] is True
    assert len(result["warnings"]) == 2


def test_recurring_task_without_due_date_warns() -> None:
    result = RecurrenceValidator.validate_task_with_recurrence({"recurrence": "monthly"})

    assert result["valid"] is True
    assert result["warnings"]


def test_tag_limits() -> None:
    assert RecurrenceValidator.validate_tags(None)["valid"] is True
    assert RecurrenceValidator.validate_tags(["work", "home"])["valid"] is True
    assert RecurrenceValidator.validate_tags([f"t{i}" for i in range(11)])["valid"] is False
    assert RecurrenceValidator.validate_tags(["x" * 21])["valid"] is False
    assert RecurrenceValidator.validate_tags(["#urgent!"])["warnings"]
