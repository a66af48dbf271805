"""Validation of recurrence settings and tags before a task is stored."""
from typing import Dict, Any, List, Optional
import re

from taskflow.services.recurrence import RecurrenceKind

MAX_TAGS = 10
MAX_TAG_LENGTH = 20
TAG_PATTERN = re.compile(r"^[\w\s\-.]+$")


def _result() -> Dict[str, Any]:
    return {"valid": True, "errors": [], "warnings": []}


def _fail(result: Dict[str, Any], message: str) -> Dict[str, Any]:
    result["valid"] = False
    result["errors"].append(message)
    return result


class RecurrenceValidator:
    """Validate recurrence settings and tags for tasks."""

    # detail key -> (kinds it applies to, min, max)
    DETAIL_RANGES = {
        "day_of_week": ((RecurrenceKind.WEEKLY.value,), 0, 6),
        "day_of_month": ((RecurrenceKind.MONTHLY.value, RecurrenceKind.YEARLY.value), 1, 31),
        "month": ((RecurrenceKind.YEARLY.value,), 0, 11),
    }

    @staticmethod
    def validate_recurrence_pattern(recurrence: str, recurrence_details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Validate a recurrence kind and its details.

        Args:
            recurrence: Recurrence kind (none, daily, weekly, monthly, yearly)
            recurrence_details: Optional kind-specific overrides

        Returns:
            Dict with "valid", "errors" and "warnings"
        """
        result = _result()

        allowed = [kind.value for kind in RecurrenceKind]
        if recurrence not in allowed:
            return _fail(result, f"Recurrence must be one of: {', '.join(allowed)}")

        if not recurrence_details:
            return result
        if not isinstance(recurrence_details, dict):
            return _fail(result, "Recurrence details must be an object")

        for key, value in recurrence_details.items():
            if value is None:
                continue
            if key not in RecurrenceValidator.DETAIL_RANGES:
                result["warnings"].append(f"Unknown recurrence detail '{key}' is ignored")
                continue

            kinds, low, high = RecurrenceValidator.DETAIL_RANGES[key]
            if isinstance(value, bool) or not isinstance(value, int):
                _fail(result, f"Recurrence detail '{key}' must be an integer")
            elif not low <= value <= high:
                _fail(result, f"Recurrence detail '{key}' must be between {low} and {high}, got {value}")
            elif recurrence not in kinds:
                result["warnings"].append(f"Recurrence detail '{key}' has no effect for {recurrence} recurrence")

        return result

    @staticmethod
    def validate_task_with_recurrence(task_data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate the recurrence fields of task data (create payload or merged update)."""
        recurrence = task_data.get("recurrence") or RecurrenceKind.NONE.value
        result = RecurrenceValidator.validate_recurrence_pattern(recurrence, task_data.get("recurrence_details"))

        if result["valid"] and recurrence != RecurrenceKind.NONE.value and not task_data.get("due_date"):
            result["warnings"].append("Recurring task without a due date is anchored on its creation day")
        return result

    @staticmethod
    def validate_tags(tags: Optional[List[Any]]) -> Dict[str, Any]:
        """Check tag count and length; unusual characters only produce warnings."""
        result = _result()
        if not tags:
            return result
        if not isinstance(tags, list):
            return _fail(result, "Tags must be a list")
        if len(tags) > MAX_TAGS:
            _fail(result, f"Maximum {MAX_TAGS} tags allowed, got {len(tags)}")

        for index, tag in enumerate(tags):
            if not isinstance(tag, str):
                _fail(result, f"Tag at index {index} must be a string")
            elif len(tag) > MAX_TAG_LENGTH:
                _fail(result, f"Tag '{tag}' exceeds maximum length of {MAX_TAG_LENGTH} characters")
            elif not TAG_PATTERN.match(tag):
                result["warnings"].append(f"Tag '{tag}' contains unusual characters")
        return result
