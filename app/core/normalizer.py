"""
Warehouse value normalization.

The BigQuery client hands back temporal columns as datetime objects and some
JSON paths surface them as {"value": "<iso string>"} wrappers. Everything that
leaves the gateway goes through normalize() so downstream code only ever sees
plain strings, numbers, booleans and None.
"""

import base64
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Generic, List, Mapping, TypeVar

Row = Dict[str, Any]

T = TypeVar("T")


def normalize(value: Any) -> Any:
    """
    Recursively unwrap {"value": x} wrappers and convert warehouse scalar types.

    NUMERIC and BIGNUMERIC arrive as Decimal and are returned as float, which
    keeps about 15 significant digits. Sensor readings fit in that; exact
    decimals beyond it are rounded.
    """
    if isinstance(value, Mapping):
        if len(value) == 1 and "value" in value:
            return normalize(value["value"])
        return {key: normalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize(item) for item in value]
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def normalize_row(row: Mapping[str, Any]) -> Row:
    return {key: normalize(item) for key, item in row.items()}


@dataclass
class ItemFailure:
    index: int
    key: str
    error: Exception


@dataclass
class BatchOutcome(Generic[T]):
    """Per-item results of a loop over independent items"""
    successes: List[T] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)

    def add(self, items: List[T]) -> None:
        self.successes.extend(items)

    def fail(self, index: int, key: str, error: Exception) -> None:
        self.failures.append(ItemFailure(index=index, key=key, error=error))
