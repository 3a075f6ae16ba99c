"""Pricing, occupancy and date-period helpers.

Everything here is a plain function over values already fetched from the
database. Rows may be SQLModel instances or mappings with the same keys.
"""
import calendar
import math
from collections import namedtuple
from datetime import date, datetime, time, timedelta, timezone
from parking_app.config import Config
from parking_app.utils.errors import InvalidPeriodTypeError, TariffNotFoundError

LOCAL_TZ = Config.get_timezone()

# VEHICLE SEGMENTS
SEGMENT_CAR = "AUT"
SEGMENT_MOTORCYCLE = "MOT"
SEGMENT_TRUCK = "CAM"
SEGMENTS = (SEGMENT_CAR, SEGMENT_MOTORCYCLE, SEGMENT_TRUCK)

# TARIFF PERIOD CODES
PERIOD_HOUR = 1
PERIOD_DAY = 2
PERIOD_MONTH = 3
PERIOD_WEEK = 4
PERIOD_CODES = (PERIOD_HOUR, PERIOD_DAY, PERIOD_MONTH, PERIOD_WEEK)

# length of one billable unit, months counted as 30 days
PERIOD_UNIT_HOURS = {
    PERIOD_HOUR: 1,
    PERIOD_DAY: 24,
    PERIOD_WEEK: 24 * 7,
    PERIOD_MONTH: 24 * 30,
}

# duration agreed when a vehicle enters
DURATION_TYPES = {
    "hora": PERIOD_HOUR,
    "dia": PERIOD_DAY,
    "semana": PERIOD_WEEK,
    "mes": PERIOD_MONTH,
}

# SUBSCRIPTION PERIODS
WEEKLY = "semanal"
MONTHLY = "mensual"
SUBSCRIPTION_PERIOD_MONTHS = {
    MONTHLY: 1,
    "bimestral": 2,
    "trimestral": 3,
    "anual": 12,
}
SUBSCRIPTION_PERIODS = (WEEKLY,) + tuple(SUBSCRIPTION_PERIOD_MONTHS)
DEFAULT_SUBSCRIPTION_PERIOD = MONTHLY

NO_ZONE = "Sin Zona"

FeeBreakdown = namedtuple("FeeBreakdown", ["units", "unit_price", "fee", "elapsed_seconds"])


def _get(row, name, default=None):
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return an aware UTC datetime; naive values are taken as UTC already."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def local_date(value=None):
    return as_utc(value or utcnow()).astimezone(LOCAL_TZ).date()


def format_local_time(value):
    if value is None:
        return None
    return as_utc(value).astimezone(LOCAL_TZ).strftime("%I:%M %p")


def normalize_segment(segment):
    if not segment:
        return SEGMENT_CAR
    segment = str(segment).strip().upper()
    return segment if segment in SEGMENTS else SEGMENT_CAR


def intervals_overlap(start_a, end_a, start_b, end_b):
    return as_utc(start_a) < as_utc(end_b) and as_utc(end_a) > as_utc(start_b)


# TARIFF RESOLUTION

def resolve_tariff(rows, lot_id, period_type, template_id=None, segment=None, now=None):
    """Pick the tariff row in force for a lot, template (or segment) and period.

    Rows whose effective-from lies after ``now`` are ignored. Among the rest the
    latest effective-from wins; equal dates fall back to the highest row id.
    Raises TariffNotFoundError when nothing applies.
    """
    if template_id is None and segment is None:
        raise ValueError("Either template_id or segment is required to resolve a tariff.")

    now = as_utc(now) if now is not None else utcnow()
    wanted_segment = normalize_segment(segment)

    candidates = []
    for row in rows:
        if _get(row, "lot_id") != lot_id or _get(row, "period_type") != period_type:
            continue
        if template_id is not None:
            if _get(row, "template_id") != template_id:
                continue
        elif normalize_segment(_get(row, "segment")) != wanted_segment:
            continue
        if as_utc(_get(row, "effective_from")) > now:
            continue
        candidates.append(row)

    if not candidates:
        raise TariffNotFoundError(lot_id, period_type, template_id=template_id,
                                  segment=None if template_id is not None else wanted_segment)

    candidates.sort(key=lambda r: (as_utc(_get(r, "effective_from")), _get(r, "id") or 0), reverse=True)
    return candidates[0]


def resolve_tariff_price(rows, lot_id, period_type, template_id=None, segment=None, now=None):
    row = resolve_tariff(rows, lot_id, period_type, template_id=template_id, segment=segment, now=now)
    return float(_get(row, "price"))


# OCCUPANCY

def _empty_stats():
    return {"total": 0, "occupied": 0, "free": 0}


def _occupied_numbers(open_occupancies):
    return {
        _get(o, "space_number")
        for o in open_occupancies
        if _get(o, "exit_time") is None
    }


def aggregate_occupancy(spaces, open_occupancies):
    """Count total, occupied and free spaces for each vehicle segment."""
    occupied = _occupied_numbers(open_occupancies)
    result = {segment: _empty_stats() for segment in SEGMENTS}

    for space in spaces:
        stats = result[normalize_segment(_get(space, "segment"))]
        stats["total"] += 1
        if _get(space, "number") in occupied:
            stats["occupied"] += 1

    for stats in result.values():
        stats["free"] = max(0, stats["total"] - stats["occupied"])
    return result


def aggregate_by_zone(spaces, open_occupancies):
    occupied = _occupied_numbers(open_occupancies)
    zones = {}

    for space in sorted(spaces, key=lambda s: _get(s, "number")):
        name = _get(space, "zone") or NO_ZONE
        zone = zones.setdefault(name, {
            "zone": name,
            "stats": _empty_stats(),
            "segments": {segment: _empty_stats() for segment in SEGMENTS},
        })
        segment_stats = zone["segments"][normalize_segment(_get(space, "segment"))]
        zone["stats"]["total"] += 1
        segment_stats["total"] += 1
        if _get(space, "number") in occupied:
            zone["stats"]["occupied"] += 1
            segment_stats["occupied"] += 1

    for zone in zones.values():
        for stats in [zone["stats"], *zone["segments"].values()]:
            stats["free"] = max(0, stats["total"] - stats["occupied"])
    return list(zones.values())


# FEES

def duration_type_code(duration_type):
    try:
        return DURATION_TYPES[duration_type]
    except KeyError:
        raise InvalidPeriodTypeError(duration_type, DURATION_TYPES) from None


def calculate_period_fee(entry_time, exit_time, unit_price, period_type=PERIOD_HOUR):
    """Bill whole units of ``period_type``, rounding up, never less than one unit."""
    elapsed_seconds = max(0.0, (as_utc(exit_time) - as_utc(entry_time)).total_seconds())
    unit_seconds = PERIOD_UNIT_HOURS[period_type] * Config.SECONDS_PER_HOUR
    units = max(1, math.ceil(elapsed_seconds / unit_seconds))
    return FeeBreakdown(units, unit_price, units * unit_price, elapsed_seconds)


def calculate_fee(entry_time, exit_time, hourly_price):
    return calculate_period_fee(entry_time, exit_time, hourly_price, PERIOD_HOUR)


# SUBSCRIPTION PERIODS

def parse_period_type(tag):
    """Missing tags mean monthly; unknown ones are rejected."""
    if tag is None or not str(tag).strip():
        return DEFAULT_SUBSCRIPTION_PERIOD
    tag = str(tag).strip().lower()
    if tag not in SUBSCRIPTION_PERIODS:
        raise InvalidPeriodTypeError(tag, SUBSCRIPTION_PERIODS)
    return tag


def subscription_tariff_code(period_type):
    return PERIOD_WEEK if parse_period_type(period_type) == WEEKLY else PERIOD_MONTH


def period_price(base_price, period_type, quantity=1):
    period_type = parse_period_type(period_type)
    if period_type == WEEKLY:
        return base_price * quantity
    return base_price * SUBSCRIPTION_PERIOD_MONTHS[period_type] * quantity


def add_months(start, months):
    # day-of-month overflow clamps to the last day of the target month
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_new_expiry(start, period_type, quantity):
    if isinstance(start, str):
        start = date.fromisoformat(start[:10])
    elif isinstance(start, datetime):
        start = start.date()
    if quantity < 1:
        raise ValueError("quantity must be at least 1")

    period_type = parse_period_type(period_type)
    if period_type == WEEKLY:
        return start + timedelta(days=7 * quantity)
    return add_months(start, SUBSCRIPTION_PERIOD_MONTHS[period_type] * quantity)
