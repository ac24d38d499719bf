from datetime import datetime, time
from decimal import Decimal, ROUND_HALF_UP

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.exceptions import ValidationError

MONEY_QUANT = Decimal("0.01")
TRUTHY_VALUES = {"1", "true", "t", "yes", "y", "on"}


def to_money(value):
    return Decimal(value or 0).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def is_truthy(value):
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUTHY_VALUES


def local_today():
    return timezone.localdate()


def parse_local_bound(raw_value, *, field, end=False):
    """
    Turn a `YYYY-MM-DD` or `YYYY-MM-DDTHH:MM[:SS]` query value into an aware datetime.

    Naive values are read in the operator's time zone. A date-only upper bound
    covers the whole local day.
    """
    if not raw_value:
        return None

    raw_value = raw_value.strip().replace(" ", "T")
    try:
        # Dates first: parse_datetime also accepts a bare date and reads it as midnight.
        day = parse_date(raw_value)
        if day is not None:
            value = datetime.combine(day, time.max if end else time.min)
        else:
            value = parse_datetime(raw_value)
    except ValueError:
        value = None
    if value is None:
        raise ValidationError({field: "Expected a date (YYYY-MM-DD) or datetime (YYYY-MM-DDTHH:MM:SS)."})

    if timezone.is_naive(value):
        value = timezone.make_aware(value, timezone.get_current_timezone())
    return value


def local_day_bounds(day):
    tz = timezone.get_current_timezone()
    return (
        timezone.make_aware(datetime.combine(day, time.min), tz),
        timezone.make_aware(datetime.combine(day, time.max), tz),
    )
