"""Shared utility functions for services and blueprints.

parse_date_input:  strict date parsing, raises ValidationError on bad input
"""
from datetime import date, datetime

from revision_portal.core.exceptions import ValidationError


def parse_date_input(value, field_name="date"):
    """Parse a date string, raising ValidationError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS, DD.MM.YYYY, date/datetime objects.
    Empty input returns None.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError:
        raise ValidationError(
            f"Invalid {field_name}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field_name: value},
        ) from None
