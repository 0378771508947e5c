"""Map scraped job dicts to the Blacklight job record.

Scrapers return either nested records
(``{"job": {...}, "company": {...}, "location": {...}, "compensation": {...}}``)
or flat ones (``{"title": ..., "company": "Acme", "location": "NYC"}``).
:func:`format_job_for_backend` reads both shapes and always emits the six
required fields; optional fields are only present when they carry a value.

``platform_job_id`` resolution order:

1. ``jobId`` / ``postId`` / ``id`` on the nested ``job`` object, then on the
   flat record (non-empty strings other than ``"N/A"`` only).
2. djb2 hash of the job URL, rendered ``"h" + base36``.
3. ``"<platform>-<epoch ms>-<random>"``.

The djb2 hash reproduces 32-bit JavaScript integer semantics so ids stay
stable across scraper rewrites.
"""

from __future__ import annotations

import logging
import random
import re
import string
import time
from typing import Any

from scrapequeue.core.models import JobRecord

__all__ = ["format_job_for_backend", "djb2_hash"]

logger = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_BASE36_DIGITS = string.digits + string.ascii_lowercase


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x1_0000_0000 if value >= 0x8000_0000 else value


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def djb2_hash(text: str) -> str:
    """Return the ``"h" + base36`` djb2 hash of *text*.

    Characters are consumed as UTF-16 code units.
    """
    units = text.encode("utf-16-le")
    h = 5381
    for i in range(0, len(units), 2):
        code_unit = units[i] | (units[i + 1] << 8)
        h = _to_int32(_to_int32(h) << 5) + h + code_unit
    return "h" + _to_base36(h % 0x1_0000_0000)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _usable_id(value: Any) -> str | None:
    if isinstance(value, str) and value and value != "N/A":
        return value
    return None


def _first(*values: Any) -> Any:
    """Return the first truthy value, or ``None``."""
    for value in values:
        if value:
            return value
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else None


def _random_suffix(length: int = 9) -> str:
    return "".join(random.choices(_BASE36_DIGITS, k=length))


def _platform_job_id(job: dict[str, Any], job_data: dict[str, Any], platform: str) -> str:
    for source in (job_data, job):
        for key in ("jobId", "postId", "id"):
            found = _usable_id(source.get(key))
            if found:
                return found

    url = _first(job_data.get("url"), job_data.get("applyUrl"), job.get("url"), job.get("applyUrl"))
    if isinstance(url, str) and url != "N/A":
        return djb2_hash(url)

    return f"{platform}-{int(time.time() * 1000)}-{_random_suffix()}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def format_job_for_backend(job: JobRecord, platform: str) -> dict[str, Any]:
    """Convert one scraped job to the backend's job record.

    Args:
        job: Nested or flat job dict as returned by a scraper.
        platform: Platform key, used for the random id fallback.

    Returns:
        A dict with ``platform_job_id``, ``title``, ``company``,
        ``location``, ``description`` and ``url``, plus whichever optional
        fields had usable values.
    """
    job_data = _as_dict(job.get("job")) or job
    company_data = _as_dict(job.get("company"))
    location_data = _as_dict(job.get("location"))
    compensation = _as_dict(job.get("compensation"))
    employment = _as_dict(job.get("employment"))
    experience = _as_dict(job.get("experience"))

    company = company_data.get("name") or (job.get("company") if not company_data else None)
    location = location_data.get("formatted") or (
        job.get("location") if not location_data else None
    )

    formatted: dict[str, Any] = {
        "platform_job_id": _platform_job_id(job, job_data, platform),
        "title": job_data.get("title") or job.get("title") or "N/A",
        "company": company or "N/A",
        "location": location or "N/A",
        "description": job_data.get("description") or job.get("description") or "",
        "url": _first(
            job_data.get("url"), job_data.get("applyUrl"), job.get("url"), job.get("applyUrl")
        )
        or "",
    }

    salary_min = _first(compensation.get("salaryMin"), job.get("salary_min"), job.get("salaryMin"))
    salary_max = _first(compensation.get("salaryMax"), job.get("salary_max"), job.get("salaryMax"))
    if salary_min is not None and (parsed := _parse_int(salary_min)) is not None:
        formatted["salary_min"] = parsed
    if salary_max is not None and (parsed := _parse_int(salary_max)) is not None:
        formatted["salary_max"] = parsed

    currency = _first(compensation.get("currency"), job.get("salary_currency")) or "USD"
    if currency != "N/A":
        formatted["salary_currency"] = currency

    job_type = _first(
        employment.get("type"), job.get("job_type"), job.get("jobType"), job.get("employmentType")
    )
    if isinstance(job_type, str) and job_type != "N/A":
        formatted["job_type"] = re.sub(r"[\s-]", "_", job_type.lower())

    level = _first(
        experience.get("level"), job.get("experience_level"), job.get("experienceLevel")
    )
    if isinstance(level, str) and level != "N/A":
        formatted["experience_level"] = level.lower()

    posted = _first(job_data.get("postedDate"), job.get("posted_date"), job.get("postedDate"))
    if isinstance(posted, str) and _ISO_DATE_RE.match(posted):
        formatted["posted_date"] = posted.split("T")[0]

    is_remote = _first(location_data.get("remote"), job.get("is_remote"), job.get("isRemote"))
    if is_remote is True or (
        isinstance(formatted["location"], str) and "remote" in formatted["location"].lower()
    ):
        formatted["is_remote"] = True

    return formatted
