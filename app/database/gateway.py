"""
Access Store Gateway

Thin layer over the BigQuery client. Identifiers (project, dataset, table,
column names) are interpolated into SQL text after validation; values are
always bound as query parameters. Every row leaving the gateway is already
normalized (see app.core.normalizer).
"""

import concurrent.futures
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fastapi import Depends
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import bigquery

from app.config import settings
from app.core.exceptions import InvalidIdentifierError, QueryError
from app.core.normalizer import Row, normalize_row
from app.database.bigquery_client import get_bigquery

logger = logging.getLogger(__name__)

_TABLE_PART_RE = re.compile(r"^[A-Za-z0-9_\-]+$")
_COLUMN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_table_part(value: Any, kind: str = "identifier") -> str:
    """Return a project/dataset/table name that is safe to embed in SQL text"""
    if not isinstance(value, str) or not _TABLE_PART_RE.match(value):
        raise InvalidIdentifierError(value, kind)
    return value


def validate_column(value: Any) -> str:
    if not isinstance(value, str) or not _COLUMN_RE.match(value):
        raise InvalidIdentifierError(value, "column name")
    return value


def table_ref(project_id: str, dataset_name: str, table_name: str) -> str:
    """Backtick-quoted fully qualified table reference"""
    return "`{}.{}.{}`".format(
        validate_table_part(project_id, "project id"),
        validate_table_part(dataset_name, "dataset name"),
        validate_table_part(table_name, "table name"),
    )


def expect_columns(row: Mapping[str, Any], columns: Iterable[str]) -> Dict[str, Any]:
    """Pick the declared columns out of a row; a missing column is a store contract error"""
    missing = [c for c in columns if c not in row]
    if missing:
        raise QueryError(f"Result row is missing expected columns: {', '.join(missing)}")
    return {c: row[c] for c in columns}


def _scalar_parameter(name: str, value: Any) -> bigquery.ScalarQueryParameter:
    if isinstance(value, bool):
        type_ = "BOOL"
    elif isinstance(value, int):
        type_ = "INT64"
    elif isinstance(value, float):
        type_ = "FLOAT64"
    elif isinstance(value, datetime):
        type_ = "TIMESTAMP"
    elif isinstance(value, date):
        type_ = "DATE"
    else:
        type_ = "STRING"
        if value is not None:
            value = str(value)
    return bigquery.ScalarQueryParameter(name, type_, value)


class AccessStoreGateway:
    def __init__(self, client: bigquery.Client, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.query_timeout_seconds

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Row]:
        """Run a parameterized query and return normalized rows"""
        params = params or {}
        job_config = bigquery.QueryJobConfig(
            query_parameters=[_scalar_parameter(name, value) for name, value in params.items()]
        )
        logger.debug("Executing query: %s with params: %s", " ".join(sql.split()), params)
        try:
            job = self.client.query(sql, job_config=job_config)
            result = job.result(timeout=self.timeout)
        except (concurrent.futures.TimeoutError, TimeoutError) as e:
            raise QueryError(f"Query timed out after {self.timeout}s", retryable=True, cause=e) from e
        except google_exceptions.GoogleAPIError as e:
            retryable = isinstance(e, (google_exceptions.ServiceUnavailable, google_exceptions.InternalServerError))
            raise QueryError(f"Query failed: {e}", retryable=retryable, cause=e) from e
        except auth_exceptions.GoogleAuthError as e:
            raise QueryError(f"Could not authenticate to BigQuery: {e}", retryable=True, cause=e) from e
        rows = [normalize_row(dict(row.items())) for row in result]
        logger.debug("Query returned %d rows", len(rows))
        return rows

    def list_tables(self, project_id: str, dataset_name: str) -> List[str]:
        """Return the bare table names in a dataset"""
        dataset_ref = "{}.{}".format(
            validate_table_part(project_id, "project id"),
            validate_table_part(dataset_name, "dataset name"),
        )
        try:
            return [t.table_id for t in self.client.list_tables(dataset_ref, timeout=self.timeout)]
        except google_exceptions.GoogleAPIError as e:
            raise QueryError(f"Failed to list tables in {dataset_ref}: {e}", cause=e) from e
        except auth_exceptions.GoogleAuthError as e:
            raise QueryError(f"Could not authenticate to BigQuery: {e}", retryable=True, cause=e) from e

    def list_columns(self, project_id: str, dataset_name: str, table_name: str) -> List[str]:
        """Return top-level column names of a table (schema introspection)"""
        ref = "{}.{}.{}".format(
            validate_table_part(project_id, "project id"),
            validate_table_part(dataset_name, "dataset name"),
            validate_table_part(table_name, "table name"),
        )
        try:
            table = self.client.get_table(ref, timeout=self.timeout)
        except google_exceptions.GoogleAPIError as e:
            raise QueryError(f"Failed to fetch schema for table {ref}: {e}", cause=e) from e
        except auth_exceptions.GoogleAuthError as e:
            raise QueryError(f"Could not authenticate to BigQuery: {e}", retryable=True, cause=e) from e
        return [f.name for f in table.schema]


def get_gateway(client: bigquery.Client = Depends(get_bigquery)) -> AccessStoreGateway:
    return AccessStoreGateway(client)
