"""Validation of raw /generateTrip bodies into a ``GenerationRequest``.

Checks run in a fixed order (shape, presence of every field, then per-field
type and range) so a given bad body always yields the same message.
"""

import math
from typing import Any

from app.errors import InvalidArgument
from app.schemas.trip import GenerationRequest

REQUIRED_FIELDS = ("budget", "days", "interests", "uid")

MIN_BUDGET = 100
MIN_DAYS = 1
MAX_DAYS = 30
MIN_INTERESTS_LENGTH = 10


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_generation_request(payload: Any) -> GenerationRequest:
    if not isinstance(payload, dict):
        raise InvalidArgument("body", "Request body must be a JSON object")

    for field in REQUIRED_FIELDS:
        if _is_missing(payload.get(field)):
            raise InvalidArgument(
                field, f"Missing required field: {field} (required: budget, days, interests, uid)"
            )

    budget = payload["budget"]
    # Integers of any size are fine; math.isfinite would overflow on them.
    non_finite = isinstance(budget, float) and not math.isfinite(budget)
    if not _is_number(budget) or non_finite or budget < MIN_BUDGET:
        raise InvalidArgument("budget", f"Budget must be a number and at least {MIN_BUDGET}")

    days = payload["days"]
    if isinstance(days, float) and days.is_integer():
        days = int(days)
    if not isinstance(days, int) or isinstance(days, bool) or not MIN_DAYS <= days <= MAX_DAYS:
        raise InvalidArgument("days", f"Days must be a whole number between {MIN_DAYS} and {MAX_DAYS}")

    interests = payload["interests"]
    if not isinstance(interests, str) or len(interests) < MIN_INTERESTS_LENGTH:
        raise InvalidArgument(
            "interests", f"Interests must be a string with at least {MIN_INTERESTS_LENGTH} characters"
        )

    uid = payload["uid"]
    if not isinstance(uid, str):
        raise InvalidArgument("uid", "uid must be a string")

    return GenerationRequest(budget=budget, days=days, interests=interests, subject_id=uid)
