from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.utils import timezone
from rest_framework.exceptions import ValidationError

DAYS_OF_WEEK = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


def today() -> date:
    return timezone.localdate()


def current_academic_year(on: date | None = None) -> str:
    """'2025-2026' style label; the year starts in ACADEMIC_YEAR_START_MONTH."""
    on = on or today()
    start_month = settings.SCHOOL_MANAGEMENT["ACADEMIC_YEAR_START_MONTH"]
    if on.month >= start_month:
        return f"{on.year}-{on.year + 1}"
    return f"{on.year - 1}-{on.year}"


def academic_year_months(start_month: int | None = None) -> list[int]:
    """Calendar months in academic order, e.g. [4, 5, ..., 12, 1, 2, 3]."""
    if start_month is None:
        start_month = settings.SCHOOL_MANAGEMENT["ACADEMIC_YEAR_START_MONTH"]
    return [((start_month - 1 + i) % 12) + 1 for i in range(12)]


def week_range(anchor: date):
    start = anchor - timedelta(days=anchor.weekday())  # Monday
    end = start + timedelta(days=5)  # Saturday
    return start, end


def parse_date(value, field="date") -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError):
        raise ValidationError({field: "invalid date (use YYYY-MM-DD)"})


def percent(part, total) -> int:
    """Whole-number percentage, halves rounded up."""
    if not total:
        return 0
    value = Decimal(part) * 100 / Decimal(total)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
