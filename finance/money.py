from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal('0.01')


def to_decimal(v):
    if isinstance(v, Decimal):
        return v
    if v is None or v == '':
        return Decimal('0.00')
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal('0.00')


def quantize_money(d: Decimal) -> Decimal:
    return to_decimal(d).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(v) -> int:
    """Money value as an integer number of cents; all settlement comparisons use this."""
    return int(quantize_money(v) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)
