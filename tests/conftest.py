"""Shared fixtures: an in-memory stand-in for the BigQuery-backed gateway."""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.core.exceptions import QueryError
from app.core.normalizer import normalize_row
from app.database.gateway import get_gateway
from app.main import app

TABLE_RE = re.compile(r"FROM `([^`]+)`")
COUNTIF_RE = re.compile(r"COUNTIF\((\w+) IS NOT NULL\) > 0 AS (\w+)")
SELECT_RE = re.compile(r"SELECT\s+(.*?)\s+FROM", re.S)
LIMIT_ONE_RE = re.compile(r"LIMIT 1\s*$")


def _as_datetime(value):
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FakeGateway:
    """
    Answers the query shapes issued by the resolvers from in-memory rows.

    Every query is recorded in ``queries`` as ``(sql, params)`` and every row
    goes through the normalizer, as with the real gateway.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[str, Any]] = {}
        self.queries: List[tuple] = []
        self.query_failures: List[tuple] = []
        self.schema_failures = set()
        self.dataset_failures = set()

    def add_table(self, ref: str, rows: List[Dict[str, Any]], columns: Optional[List[str]] = None):
        if columns is None:
            columns = []
            for row in rows:
                columns.extend(k for k in row if k not in columns)
        self.tables[ref] = {"columns": columns, "rows": rows}

    def add_grants(self, grants: List[Dict[str, Any]]):
        self.add_table(settings.permissions_table_ref, grants)

    def fail_query(self, marker: str, error: Optional[Exception] = None):
        self.query_failures.append((marker, error or QueryError(f"Injected failure for {marker}")))

    def queried_tables(self) -> List[str]:
        return [m.group(1) for m in (TABLE_RE.search(sql) for sql, _ in self.queries) if m]

    @staticmethod
    def _columns(sql: str) -> List[str]:
        return [c.strip() for c in SELECT_RE.search(sql).group(1).split(",")]

    def _match(self, row: Dict[str, Any], params: Dict[str, Any]) -> bool:
        checks = {
            "email": "email",
            "experiment_name": settings.experiment_column,
            "mac_address": settings.mac_address_column,
        }
        return all(row.get(column) == params[name] for name, column in checks.items() if name in params)

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None):
        params = dict(params or {})
        self.queries.append((sql, params))
        for marker, error in self.query_failures:
            if marker in sql:
                raise error
        ref = TABLE_RE.search(sql).group(1)
        if ref not in self.tables:
            raise QueryError(f"Not found: Table {ref}")
        rows = [r for r in self.tables[ref]["rows"] if self._match(r, params)]

        if "SELECT DISTINCT" in sql:
            column = settings.experiment_column
            names = sorted({r.get(column) for r in rows if r.get(column) is not None})
            result = [{"experiment_name": n} for n in names]
        elif "COUNTIF(" in sql:
            result = [{
                alias: any(r.get(column) is not None for r in rows)
                for column, alias in COUNTIF_RE.findall(sql)
            }]
        elif "MIN(" in sql:
            stamps = [r[settings.timestamp_column] for r in rows if r.get(settings.timestamp_column) is not None]
            result = [{
                "first_timestamp": min(stamps) if stamps else None,
                "last_timestamp": max(stamps) if stamps else None,
            }]
        elif LIMIT_ONE_RE.search(sql):
            result = [{c: r.get(c) for c in self._columns(sql)} for r in rows[:1]]
        else:
            if "start" in params:
                stamp = settings.timestamp_column
                rows = sorted(
                    (r for r in rows if r.get(stamp) and params["start"] <= _as_datetime(r[stamp]) <= params["end"]),
                    key=lambda r: _as_datetime(r[stamp]),
                )
            result = [{c: r.get(c) for c in self._columns(sql)} for r in rows]
        return [normalize_row(r) for r in result]

    def list_tables(self, project_id: str, dataset_name: str) -> List[str]:
        prefix = f"{project_id}.{dataset_name}"
        if prefix in self.dataset_failures:
            raise QueryError(f"Not found: Dataset {prefix}")
        return [ref.split(".")[-1] for ref in self.tables if ref.rsplit(".", 1)[0] == prefix]

    def list_columns(self, project_id: str, dataset_name: str, table_name: str) -> List[str]:
        ref = f"{project_id}.{dataset_name}.{table_name}"
        if ref in self.schema_failures or ref not in self.tables:
            raise QueryError(f"Not found: Table {ref}")
        return list(self.tables[ref]["columns"])


def sensor_row(experiment, timestamp, mac="AA:BB:CC:DD:EE:01", **sensors):
    row = {
        settings.experiment_column: experiment,
        settings.mac_address_column: mac,
        settings.timestamp_column: timestamp,
        "SensorData_Temperature": None,
        "SensorData_Humidity": None,
        "SensorData_Light": None,
        "Battery": 3.7,
    }
    row.update({f"SensorData_{k}": v for k, v in sensors.items()})
    return row


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(gateway: FakeGateway):
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
