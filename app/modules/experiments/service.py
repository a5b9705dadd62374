import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from app.config import settings
from app.core.exceptions import (
    DescriptorValidationError, InvalidIdentifierError, InvalidRequestError, QueryError, SchemaDiscoveryError
)
from app.core.normalizer import Row, normalize
from app.database.gateway import AccessStoreGateway, expect_columns, table_ref, validate_column, validate_table_part
from app.modules.experiments.models import sensor_columns
from app.modules.experiments.schemas import (
    DataRequest, ExperimentDescriptor, ExperimentMetadata, ExperimentSummary, TimeRange
)

logger = logging.getLogger(__name__)

DESCRIPTOR_REQUIRED_FIELDS = ("project_id", "dataset_name", "table_id", "experiment_name")
SENSOR_DISCOVERY_STRATEGIES = ("hybrid", "sample", "full")


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp (optionally wrapped as {"value": ...}); naive values are UTC"""
    value = normalize(value)
    if _is_blank(value):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise InvalidRequestError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ExperimentMetadataService:
    def __init__(
        self,
        gateway: AccessStoreGateway,
        strategy: Optional[str] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.gateway = gateway
        self.strategy = (strategy or settings.sensor_discovery_strategy).lower()
        if self.strategy not in SENSOR_DISCOVERY_STRATEGIES:
            raise ValueError(f"Unknown sensor discovery strategy: {self.strategy}")
        self.max_concurrency = max_concurrency or settings.metadata_max_concurrency

    def validate_descriptors(self, experiments: Any) -> List[ExperimentDescriptor]:
        """Validate a whole batch; any bad item rejects the batch before a query is issued"""
        if not isinstance(experiments, list):
            raise InvalidRequestError("Valid experiments array is required")

        invalid = []
        for index, item in enumerate(experiments):
            if not isinstance(item, dict):
                invalid.append({"index": index, "experiment": item, "missing_fields": list(DESCRIPTOR_REQUIRED_FIELDS)})
                continue
            missing = [f for f in DESCRIPTOR_REQUIRED_FIELDS if _is_blank(item.get(f))]
            bad = []
            for field_name in ("project_id", "dataset_name"):
                if field_name not in missing and not self._valid_part(item[field_name]):
                    bad.append(field_name)
            if "table_id" not in missing and not self._valid_part(item["table_id"].split(".")[-1]):
                bad.append("table_id")
            mac_address = item.get("mac_address")
            if mac_address is not None and not isinstance(mac_address, str):
                bad.append("mac_address")
            if missing or bad:
                logger.warning(f"Invalid experiment at index {index}: {item}")
                entry = {"index": index, "experiment": item, "missing_fields": missing}
                if bad:
                    entry["invalid_fields"] = bad
                invalid.append(entry)

        if invalid:
            raise DescriptorValidationError(invalid)

        return [
            ExperimentDescriptor(
                project_id=item["project_id"].strip(),
                dataset_name=item["dataset_name"].strip(),
                table_id=item["table_id"].strip(),
                experiment_name=item["experiment_name"],
                mac_address=item.get("mac_address") or None,
            )
            for item in experiments
        ]

    @staticmethod
    def _valid_part(value: str) -> bool:
        try:
            validate_table_part(value.strip())
            return True
        except InvalidIdentifierError:
            return False

    async def resolve_metadata(self, experiments: Any) -> List[ExperimentMetadata]:
        """Sensor availability and time range for each descriptor, in input order"""
        descriptors = self.validate_descriptors(experiments)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(descriptor: ExperimentDescriptor) -> ExperimentMetadata:
            async with semaphore:
                return await self._resolve_one(descriptor)

        # gather keeps input order regardless of completion order
        return list(await asyncio.gather(*(run(d) for d in descriptors)))

    async def _resolve_one(self, descriptor: ExperimentDescriptor) -> ExperimentMetadata:
        logger.info(f"Fetching metadata for experiment: {descriptor.experiment_name} in table: {descriptor.table_id}")
        try:
            sensors = await asyncio.to_thread(self.discover_sensors, descriptor)
        except SchemaDiscoveryError as e:
            logger.warning(f"No sensors for {descriptor.experiment_name}: {e}")
            sensors = []

        error = None
        try:
            time_range = await asyncio.to_thread(self.fetch_time_range, descriptor)
        except QueryError as e:
            logger.error(f"Error fetching time range for {descriptor.experiment_name}: {e}")
            time_range = TimeRange()
            error = e.message

        return ExperimentMetadata(
            table_id=descriptor.table_id,
            experiment_name=descriptor.experiment_name,
            mac_address=descriptor.mac_address,
            time_range=time_range,
            available_sensors=sensors,
            error=error,
        )

    def _scope(self, descriptor: ExperimentDescriptor) -> Tuple[str, Dict[str, Any]]:
        """WHERE clause restricting rows to one experiment (and device)"""
        clause = f"WHERE {settings.experiment_column} = @experiment_name"
        params: Dict[str, Any] = {"experiment_name": descriptor.experiment_name}
        if descriptor.mac_address:
            clause += f" AND {settings.mac_address_column} = @mac_address"
            params["mac_address"] = descriptor.mac_address
        return clause, params

    def _table(self, descriptor: ExperimentDescriptor) -> str:
        return table_ref(descriptor.project_id, descriptor.dataset_name, descriptor.table_name)

    def discover_sensors(self, descriptor: ExperimentDescriptor) -> List[str]:
        """
        Sensor columns with at least one non-null value in scope.

        'sample' looks at a single row: cheap, but misses sensors that are null
        in that row. 'full' aggregates every column over all scoped rows:
        complete, but scans the whole experiment. 'hybrid' samples first and
        only scans when the sample found nothing.
        """
        try:
            columns = self.gateway.list_columns(
                descriptor.project_id, descriptor.dataset_name, descriptor.table_name
            )
        except QueryError as e:
            raise SchemaDiscoveryError(f"Failed to fetch schema for table {descriptor.table_id}", cause=e) from e

        candidates = []
        for column in sensor_columns(columns):
            try:
                candidates.append(validate_column(column))
            except InvalidIdentifierError:
                logger.warning(f"Ignoring sensor column with unsupported name: {column!r}")
        if not candidates:
            return []

        try:
            if self.strategy == "full":
                return self._scan_sensors(descriptor, candidates)
            sampled = self._sample_sensors(descriptor, candidates)
            if sampled or self.strategy == "sample":
                return sampled
            logger.debug(f"Sample row for {descriptor.experiment_name} had no sensor values, scanning")
            return self._scan_sensors(descriptor, candidates)
        except QueryError as e:
            raise SchemaDiscoveryError(
                f"Failed to fetch available sensors for {descriptor.experiment_name}", cause=e
            ) from e

    def _sample_sensors(self, descriptor: ExperimentDescriptor, candidates: List[str]) -> List[str]:
        where, params = self._scope(descriptor)
        query = f"""
            SELECT {", ".join(candidates)}
            FROM {self._table(descriptor)}
            {where}
            LIMIT 1
        """
        rows = self.gateway.query(query, params)
        if not rows:
            return []
        row = expect_columns(rows[0], candidates)
        return [c for c in candidates if row[c] is not None]

    def _scan_sensors(self, descriptor: ExperimentDescriptor, candidates: List[str]) -> List[str]:
        where, params = self._scope(descriptor)
        checks = ", ".join(f"COUNTIF({c} IS NOT NULL) > 0 AS {c}" for c in candidates)
        query = f"""
            SELECT {checks}
            FROM {self._table(descriptor)}
            {where}
        """
        rows = self.gateway.query(query, params)
        if not rows:
            return []
        row = expect_columns(rows[0], candidates)
        return [c for c in candidates if row[c]]

    def fetch_time_range(self, descriptor: ExperimentDescriptor) -> TimeRange:
        where, params = self._scope(descriptor)
        column = settings.timestamp_column
        query = f"""
            SELECT
                MIN({column}) AS first_timestamp,
                MAX({column}) AS last_timestamp
            FROM {self._table(descriptor)}
            {where}
        """
        rows = self.gateway.query(query, params)
        if not rows:
            return TimeRange()
        row = expect_columns(rows[0], ["first_timestamp", "last_timestamp"])
        return TimeRange(**row)

    async def summarize_table(self, project_id: str, dataset_name: str, table_id: str) -> List[ExperimentSummary]:
        """Time range and working sensors of every experiment in one table"""
        return await asyncio.to_thread(self._summarize_table, project_id, dataset_name, table_id)

    def _summarize_table(self, project_id: str, dataset_name: str, table_id: str) -> List[ExperimentSummary]:
        table_name = (table_id or "").split(".")[-1]
        ref = table_ref(project_id, dataset_name, table_name)
        columns = self.gateway.list_columns(project_id, dataset_name, table_name)
        candidates = [c for c in sensor_columns(columns) if self._valid_column(c)]

        experiment = settings.experiment_column
        timestamp = settings.timestamp_column
        select = [
            f"{experiment} AS experiment_name",
            f"MIN({timestamp}) AS first_timestamp",
            f"MAX({timestamp}) AS last_timestamp",
        ]
        select.extend(f"COUNTIF({c} IS NOT NULL) > 0 AS {c}" for c in candidates)
        query = f"""
            SELECT {", ".join(select)}
            FROM {ref}
            WHERE {experiment} IS NOT NULL
            GROUP BY {experiment}
            ORDER BY experiment_name
        """
        rows = self.gateway.query(query)
        expected = ["experiment_name", "first_timestamp", "last_timestamp"] + candidates
        summaries = []
        for row in rows:
            row = expect_columns(row, expected)
            summaries.append(ExperimentSummary(
                experiment_name=row["experiment_name"],
                first_timestamp=row["first_timestamp"],
                last_timestamp=row["last_timestamp"],
                available_sensors=[c for c in candidates if row[c]],
            ))
        logger.info(f"Summarized {len(summaries)} experiments in {project_id}.{dataset_name}.{table_name}")
        return summaries

    @staticmethod
    def _valid_column(column: str) -> bool:
        try:
            validate_column(column)
            return True
        except InvalidIdentifierError:
            return False


class ExperimentDataService:
    def __init__(self, gateway: AccessStoreGateway, max_rows: Optional[int] = None):
        self.gateway = gateway
        self.max_rows = max_rows or settings.data_max_rows

    def build_query(self, request: DataRequest) -> Tuple[str, Dict[str, Any]]:
        """Validate a data request and build its projection query"""
        if any(_is_blank(getattr(request, f)) for f in DESCRIPTOR_REQUIRED_FIELDS) \
                or request.time_range is None or not request.fields:
            raise InvalidRequestError(
                "Project ID, dataset name, table ID, experiment name, time range, "
                "and at least one field are required."
            )

        start = parse_timestamp(request.time_range.start)
        end = parse_timestamp(request.time_range.end)
        if start is None or end is None:
            raise InvalidRequestError("Both start and end times are required in the time range.")
        if start > end:
            raise InvalidRequestError("Time range start must not be after its end.")

        timestamp = settings.timestamp_column
        fields = []
        for field_name in request.fields:
            column = validate_column(field_name)
            if column != timestamp and column not in fields:
                fields.append(column)

        ref = table_ref(request.project_id.strip(), request.dataset_name.strip(), request.table_id.strip().split(".")[-1])
        where = [
            f"{settings.experiment_column} = @experiment_name",
            f"{timestamp} BETWEEN @start AND @end",
        ]
        params: Dict[str, Any] = {"experiment_name": request.experiment_name, "start": start, "end": end}
        if request.mac_address:
            where.append(f"{settings.mac_address_column} = @mac_address")
            params["mac_address"] = request.mac_address

        query = f"""
            SELECT {", ".join([timestamp] + fields)}
            FROM {ref}
            WHERE {" AND ".join(where)}
            ORDER BY {timestamp}
            LIMIT {int(self.max_rows)}
        """
        return query, params

    async def fetch_data(self, request: DataRequest) -> List[Row]:
        query, params = self.build_query(request)
        rows = await asyncio.to_thread(self.gateway.query, query, params)
        logger.info(f"Fetched {len(rows)} rows for experiment {request.experiment_name}")
        return rows
