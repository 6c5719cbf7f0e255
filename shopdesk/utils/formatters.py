"""
Formatting helpers (es-MX style): money with comma thousands and a dot for
decimals, dates as DD/MM/YYYY.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime
from typing import Union, Optional


def money_mx(value: Union[int, float, Decimal, str, None], currency_symbol: str = '$') -> str:
    """
    Format a currency amount with exactly two decimals.

    Examples:
        money_mx(1500) -> "$1,500.00"
        money_mx(Decimal('-25.5')) -> "-$25.50"
        money_mx(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    return f"{sign}{currency_symbol}{abs(num):,.2f}"


def qty_mx(value: Union[int, None]) -> str:
    """Format an integer quantity with thousands separators."""
    if value is None:
        return "-"
    try:
        return f"{int(value):,}"
    except (ValueError, TypeError):
        return "-"


def date_mx(value: Union[date, datetime, None]) -> str:
    """
    Format a date as DD/MM/YYYY.

    Examples:
        date_mx(date(2026, 1, 12)) -> "12/01/2026"
    """
    if value is None:
        return "-"

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "-"

    return value.strftime("%d/%m/%Y")


def datetime_mx(value: Optional[datetime], with_time: bool = True) -> str:
    """Format a datetime as DD/MM/YYYY HH:MM (or only the date)."""
    if value is None or not isinstance(value, datetime):
        return "-"

    if with_time:
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")
