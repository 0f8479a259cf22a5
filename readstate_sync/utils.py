"""
Utility functions for the sync tool
"""

import logging
import math
import re
import time
from datetime import datetime
from functools import wraps
from typing import Tuple, Type
from urllib.parse import quote, unquote

import pytz

from readstate_sync.exceptions import ParseError
from readstate_sync.models import clamp_percent

VENDOR_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.000+00:00"

_LOOSE_TIMESTAMP = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})[T ](\d{1,2}):(\d{1,2}):(\d{1,2})")


def parse_vendor_timestamp(value: str) -> datetime:
    """
    Parse a vendor ISO-8601 timestamp into an aware UTC datetime

    Handles 2024-01-01T10:00:00Z, 2024-01-01 10:00:00.000+00:00 and any
    other offset. Naive values are taken as UTC. Raises ParseError for
    anything else.
    """
    if not value or not isinstance(value, str):
        raise ParseError(str(value))

    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        # Odd fractional-second widths: keep the whole-second part, read as UTC
        match = _LOOSE_TIMESTAMP.match(text)
        if not match:
            raise ParseError(value)
        try:
            parsed = datetime(*(int(part) for part in match.groups()))
        except ValueError:
            raise ParseError(value)

    if parsed.tzinfo is None:
        return pytz.utc.localize(parsed)
    return parsed.astimezone(pytz.utc)


def format_vendor_timestamp(moment: datetime) -> str:
    """Format a datetime the way the vendor software stores it"""
    if moment.tzinfo is None:
        moment = pytz.utc.localize(moment)
    return moment.astimezone(pytz.utc).strftime(VENDOR_TIMESTAMP_FORMAT)


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def to_vendor_percent(percent: float) -> int:
    """
    Convert a percent fraction to the vendor's integer 0-100 field
    Rounds to the nearest integer
    """
    return int(round(clamp_percent(percent) * 100))


def chapter_index_for_percent(percent: float, chapter_count: int) -> int:
    """
    Map a percent fraction to the chapter that contains it
    Uses floor to be conservative with progress, clamped to the last chapter
    """
    if chapter_count <= 0:
        raise ValueError(f"chapter_count must be positive, got {chapter_count}")

    index = math.floor(clamp_percent(percent) * chapter_count)
    return max(0, min(chapter_count - 1, index))


def chapter_start_percent(chapter_index: int, chapter_count: int) -> float:
    """Percent fraction at which a chapter begins"""
    if chapter_count <= 0:
        return 0.0
    return clamp_percent(chapter_index / chapter_count)


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def book_id_to_filename(book_id: str) -> str:
    """
    Encode an opaque book id as a single file name component

    Percent-encoding is reversible, so distinct ids never share a file and
    filename_to_book_id recovers the original id. A leading dot is encoded
    too so no id becomes a hidden file or a relative path like "..".
    """
    encoded = quote(book_id, safe="")
    if encoded.startswith("."):
        encoded = "%2E" + encoded[1:]
    return encoded


def filename_to_book_id(filename: str) -> str:
    return unquote(filename)


def retry_on_failure(
    max_retries: int = 2,
    delay: float = 0.5,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
):  # type: ignore
    """
    Decorator for retrying function calls on failure

    max_retries is the total number of attempts. Only the listed exception
    types are retried; anything else propagates immediately.
    """

    def decorator(func):  # type: ignore
        @wraps(func)
        def wrapper(*args, **kwargs):  # type: ignore
            logger = logging.getLogger(func.__module__)

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries - 1:
                        # Last attempt, re-raise the exception
                        raise

                    logger.warning(
                        f"Attempt {attempt + 1}/{max_retries} failed for {func.__name__}: {str(e)}. "
                        f"Retrying in {delay} seconds..."
                    )

                    time.sleep(delay)

        return wrapper

    return decorator
