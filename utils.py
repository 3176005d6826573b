import logging
import math
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from fastapi import HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

MONTHS = [
    {"value": str(i), "label": label}
    for i, label in enumerate(
        ["January", "February", "March", "April", "May", "June", "July",
         "August", "September", "October", "November", "December"],
        start=1,
    )
]


def parse_datetime(value) -> Optional[datetime]:
    """Parse an HTML datetime-local value ("2025-12-17T10:00") or a "YYYY-MM-DD HH:MM[:SS]" string."""
    if value is None or isinstance(value, datetime):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        try:
            return datetime.strptime(value, "%Y-%m-%d %H:%M")
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid date format")


def round_half_up(value, places: int = 0):
    """Round with the half-up convention (4.5 -> 5), unlike Python's banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


def parse_page(page) -> int:
    """Return a 1-based page number; anything unparseable or below 1 becomes 1."""
    try:
        page = int(page)
    except (TypeError, ValueError):
        return 1
    return max(page, 1)


def total_pages(count: int, limit: int) -> int:
    return math.ceil(count / limit) if count else 0


def optional_int(value) -> Optional[int]:
    """Query-string helper: '' or garbage -> None."""
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@contextmanager
def db_errors(message: str):
    """Log a failed query and answer 500 with `message`."""
    try:
        yield
    except SQLAlchemyError:
        logger.exception(message)
        raise HTTPException(status_code=500, detail=message)


def redirect(url: str) -> RedirectResponse:
    """Post/redirect/get: answer form submissions with 303 See Other."""
    return RedirectResponse(url=url, status_code=303)
