"""
Module: approval_kernel.db.types
Responsibility: Column types shared by the approval models.  Centralizes
    timestamp normalization so that models and selectors agree on storage
    shape.
Architecture position: Kernel > DB.  May be imported by models/ and
    selectors/.  MUST NOT import from either.

Invariants enforced:
    - Timestamps are stored and returned as timezone-aware UTC.  Backends
      that drop tzinfo on round-trip (SQLite) get it re-attached on load, so
      deadline arithmetic never mixes naive and aware datetimes.
    - JSON document values are stored in plain JSON form (see
      ``to_json_value``), so Decimal amounts and dates never reach the
      driver's encoder.

Failure modes:
    - ValueError if a naive datetime is bound (callers must use a Clock).
    - TypeError if a JSON value has no plain JSON form.
"""

from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime.

    Guarantees:
        - process_bind_param: aware datetime -> UTC.
        - process_result_value: always returns an aware UTC datetime.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def to_json_value(value: Any) -> Any:
    """Convert document values to the plain JSON form they are stored in.

    Decimals become strings so that amounts keep their exact digits;
    dates, datetimes and UUIDs become their ISO/string form; sets become
    sorted lists.  The condition evaluator compares numeric strings
    numerically, so conditions behave the same before and after a round
    trip through the database.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return to_json_value(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted((to_json_value(v) for v in value), key=str)
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    raise TypeError(f"Object of type {type(value).__name__} cannot be stored as JSON")


class JSONValue(TypeDecorator):
    """
    JSON column that accepts Decimal, date, datetime, UUID and Enum values.

    Guarantees:
        - process_bind_param: value -> ``to_json_value(value)``.
        - Loaded values are plain JSON (str/int/float/bool/list/dict).
    """

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return to_json_value(value)
