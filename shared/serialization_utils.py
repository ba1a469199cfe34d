"""
Serialization utilities for the wallet signal processor.

Provides JSON encoding for Decimal, Enum and dataclass values so signal
records and notification payloads can be written without float rounding.

Usage:
    from shared.serialization_utils import DecimalEncoder
    json.dumps(data, cls=DecimalEncoder)
"""

import dataclasses
import json
from decimal import Decimal
from enum import Enum
from json import JSONEncoder
from typing import Any


class DecimalEncoder(JSONEncoder):
    """
    Custom JSON encoder handling Decimal, Enum and dataclass instances.

    Decimals are written as strings so prices round-trip exactly.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


def dumps(data: Any) -> str:
    """json.dumps with DecimalEncoder."""
    return json.dumps(data, cls=DecimalEncoder)


def decimal_list_from_json(raw: str) -> list[Decimal]:
    """Parse a JSON array of numbers/strings back into Decimals."""
    values = json.loads(raw)
    if not isinstance(values, list):
        raise ValueError(f"Expected JSON array, got {type(values).__name__}")
    return [Decimal(str(v)) for v in values]
