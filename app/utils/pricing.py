from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def calculate_quote(base_rate, per_mile_rate, hourly_rate, distance_miles, duration_minutes):
    if distance_miles < 0:
        raise ValueError("distance cannot be negative")
    if duration_minutes <= 0:
        raise ValueError("duration must be positive")

    total = Decimal(str(base_rate))

    # Distance component
    total += Decimal(str(per_mile_rate)) * Decimal(str(distance_miles))

    # Duration component
    hours = Decimal(duration_minutes) / 60
    total += Decimal(str(hourly_rate)) * hours

    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def quote_for_service(service, distance_miles, duration_minutes):
    return calculate_quote(
        from_cents(service.base_rate_cents),
        from_cents(service.per_mile_rate_cents),
        from_cents(service.hourly_rate_cents),
        distance_miles,
        duration_minutes,
    )


def quote_matches(quoted, computed, tolerance_cents: int = 1) -> bool:
    return abs(to_cents(quoted) - to_cents(computed)) <= tolerance_cents
