"""Date parsing utilities.

Statement sources disagree wildly on date formats, so parsing walks a fixed,
ordered list of recognizers and returns the first match. Order matters: the
more specific patterns come first so that e.g. ``01/05`` is never read as a
full ``MM/DD/YYYY`` date.
"""

import re
from datetime import date, datetime
from typing import Callable, Optional

from dateutil import parser as date_parser

from finledger.domain.errors import NormalizationError, unparseable_date

Handler = Callable[[str, int], date]


def _strptime(fmt: str, strip: str = "") -> Handler:
    def handler(value: str, reference_year: int) -> date:
        for ch in strip:
            value = value.replace(ch, "")
        return datetime.strptime(value, fmt).date()

    return handler


def _month_name(value: str, reference_year: int) -> date:
    value = value.replace(".", "")
    try:
        return datetime.strptime(value, "%B %d, %Y").date()
    except ValueError:
        return datetime.strptime(value, "%b %d, %Y").date()


def _day_month(value: str, reference_year: int) -> date:
    return datetime.strptime(f"{value}-{reference_year}", "%d-%b-%Y").date()


def _month_day(value: str, reference_year: int) -> date:
    value = value.replace("-", "/")
    return datetime.strptime(f"{value}/{reference_year}", "%m/%d/%Y").date()


def _iso_timestamp(value: str, reference_year: int) -> date:
    return date_parser.isoparse(value).date()


# (name, pattern, handler) in priority order
DATE_RECOGNIZERS: list[tuple[str, re.Pattern[str], Handler]] = [
    ("YYYY-MM-DD", re.compile(r"^\d{4}-\d{2}-\d{2}$"), _strptime("%Y-%m-%d")),
    ("DD MMM YYYY", re.compile(r"^\d{1,2} [a-z]{3} \d{4}$", re.I), _strptime("%d %b %Y")),
    ("DD MMM 'YY", re.compile(r"^\d{1,2} [a-z]{3} ['`]?\d{2}$", re.I), _strptime("%d %b %y", "'`")),
    ("MMM D 'YY", re.compile(r"^[a-z]{3} \d{1,2} ['`]\d{2}$", re.I), _strptime("%b %d %y", "'`")),
    ("MMM D 'YYYY", re.compile(r"^[a-z]{3} \d{1,2} ['`]?\d{4}$", re.I), _strptime("%b %d %Y", "'`")),
    ("Month D, YYYY", re.compile(r"^[a-z]+\.? \d{1,2}, \d{4}$", re.I), _month_name),
    ("DD-MMM", re.compile(r"^\d{1,2}-[a-z]{3}$", re.I), _day_month),
    ("MM/DD", re.compile(r"^\d{2}[-/]\d{2}$"), _month_day),
    ("MM/DD/YYYY", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), _strptime("%m/%d/%Y")),
    ("M/D/YY", re.compile(r"^\d{1,2}/\d{1,2}/\d{2}$"), _strptime("%m/%d/%y")),
    (
        "YYYY-MM-DD HH:MM:SS.mmm",
        re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3}$"),
        _strptime("%Y-%m-%d %H:%M:%S.%f"),
    ),
    ("ISO-8601 timestamp", re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}"), _iso_timestamp),
]


def parse_date(value: str, reference_year: Optional[int] = None) -> date:
    """Parse a statement date string into a date object.

    Args:
        value: Date string as it appears in the source
        reference_year: Year used for formats without one (``DD-MMM``,
            ``MM/DD``); defaults to the current year

    Returns:
        Date object

    Raises:
        NormalizationError: If no recognizer matches, or the match is not a
            real calendar date
    """
    if value is None:
        raise NormalizationError("Missing date", value=None)

    text = value.strip()
    if not text:
        raise NormalizationError("Missing date", value=value)

    year = reference_year if reference_year is not None else date.today().year

    for name, pattern, handler in DATE_RECOGNIZERS:
        if not pattern.match(text):
            continue
        try:
            return handler(text, year)
        except ValueError as e:
            raise NormalizationError(f"{unparseable_date(value)} as {name}: {e}", value=value)

    raise NormalizationError(unparseable_date(value), value=value)


def year_bounds(year: int) -> tuple[date, date]:
    """Return the first and last day of a calendar year."""
    return date(year, 1, 1), date(year, 12, 31)
