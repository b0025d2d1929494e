"""fr-FR display helpers: currency, dates and short calendar labels."""

import math
from datetime import datetime
from numbers import Real
from typing import Any

CURRENCY = "FCFA"
_GROUP_SEPARATOR = "\u202f"  # narrow no-break space, as Intl fr-FR renders it

WEEKDAYS_SHORT = ("lun.", "mar.", "mer.", "jeu.", "ven.", "sam.", "dim.")
WEEKDAYS_LONG = ("lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche")
MONTHS_SHORT = (
    "janv.", "févr.", "mars", "avr.", "mai", "juin",
    "juil.", "août", "sept.", "oct.", "nov.", "déc.",
)
MONTHS_LONG = (
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_number(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, Real) or math.isnan(value) or math.isinf(value):
        return "0"
    rounded = _round_half_up(float(value))
    grouped = f"{abs(rounded):,}".replace(",", _GROUP_SEPARATOR)
    return f"-{grouped}" if rounded < 0 else grouped


def format_currency(amount: Any) -> str:
    return f"{format_number(amount)} {CURRENCY}"


def format_date(value: datetime, style: str = "short") -> str:
    if style == "long":
        return (
            f"{WEEKDAYS_LONG[value.weekday()]} {value.day} "
            f"{MONTHS_LONG[value.month - 1]} {value.year}"
        )
    if style == "time":
        return value.strftime("%H:%M")
    return value.strftime("%d/%m/%Y")


def weekday_label(value: datetime) -> str:
    return WEEKDAYS_SHORT[value.weekday()]


def day_month_label(value: datetime) -> str:
    return f"{value.day} {MONTHS_SHORT[value.month - 1]}"


def month_label(value: datetime) -> str:
    return MONTHS_SHORT[value.month - 1]


def is_same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()


def is_same_month(a: datetime, b: datetime) -> bool:
    return (a.year, a.month) == (b.year, b.month)
