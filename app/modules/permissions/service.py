import asyncio
import logging
from typing import List, NamedTuple, Optional

from app.config import settings
from app.config.permissions_config import get_access_level, is_table_scoped
from app.core.exceptions import InvalidIdentifierError, InvalidRequestError, InvalidTableIdError, QueryError
from app.core.normalizer import BatchOutcome
from app.database.gateway import AccessStoreGateway, expect_columns, table_ref, validate_table_part
from app.modules.permissions.models import GRANT_COLUMNS
from app.modules.permissions.schemas import Grant, ResolvedPermission

logger = logging.getLogger(__name__)


class TableAddress(NamedTuple):
    project_id: str
    dataset_name: str
    table_name: Optional[str]  # None for a dataset-wide grant

    @property
    def qualified(self) -> str:
        parts = [self.project_id, self.dataset_name]
        if self.table_name:
            parts.append(self.table_name)
        return ".".join(parts)


def parse_table_id(table_id: Optional[str], allow_dataset: bool = False) -> TableAddress:
    """Split '<project>.<dataset>.<table>'; '<project>.<dataset>' only when allow_dataset"""
    segments = (table_id or "").split(".")
    try:
        for segment in segments:
            validate_table_part(segment)
    except InvalidIdentifierError:
        raise InvalidTableIdError(table_id)
    if len(segments) == 3:
        return TableAddress(*segments)
    if len(segments) == 2 and allow_dataset:
        return TableAddress(segments[0], segments[1], None)
    raise InvalidTableIdError(table_id)


class PermissionService:
    def __init__(self, gateway: AccessStoreGateway, max_concurrency: Optional[int] = None):
        self.gateway = gateway
        self.max_concurrency = max_concurrency or settings.metadata_max_concurrency

    def fetch_grants(self, email: str) -> List[Grant]:
        """Read the raw grant rows for an email from the permission table"""
        query = f"""
            SELECT {", ".join(GRANT_COLUMNS)}
            FROM `{settings.permissions_table_ref}`
            WHERE email = @email
        """
        rows = self.gateway.query(query, {"email": email})
        return [Grant(**expect_columns(row, GRANT_COLUMNS)) for row in rows]

    def fetch_experiment_names(self, address: TableAddress) -> List[str]:
        column = settings.experiment_column
        query = f"""
            SELECT DISTINCT {column} AS experiment_name
            FROM {table_ref(address.project_id, address.dataset_name, address.table_name)}
            WHERE {column} IS NOT NULL
            ORDER BY experiment_name
        """
        rows = self.gateway.query(query)
        return [expect_columns(row, ["experiment_name"])["experiment_name"] for row in rows]

    async def resolve_permissions(self, email: str) -> List[ResolvedPermission]:
        """Flatten the grants of a user into one entry per visible experiment"""
        outcome = await self.resolve_permissions_outcome(email)
        return outcome.successes

    async def resolve_permissions_outcome(self, email: str) -> BatchOutcome[ResolvedPermission]:
        outcome: BatchOutcome[ResolvedPermission] = BatchOutcome()
        try:
            grants = await asyncio.to_thread(self.fetch_grants, email)
        except QueryError as e:
            # Reported to the caller as "no visible permissions"
            logger.error(f"Error retrieving permissions for {email}: {e}")
            return outcome

        logger.info(f"Found {len(grants)} permission records for {email}")
        if not grants:
            return outcome

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(grant: Grant):
            async with semaphore:
                try:
                    return await self._resolve_grant(grant), None
                except (InvalidRequestError, QueryError) as e:
                    return None, e

        results = await asyncio.gather(*(run(grant) for grant in grants))
        for index, (grant, (entries, error)) in enumerate(zip(grants, results)):
            if error is not None:
                logger.warning(f"Skipping grant {index} ({grant.table_id}) for {email}: {error}")
                outcome.fail(index, grant.table_id or "", error)
            else:
                outcome.add(entries)

        logger.info(
            f"Resolved {len(outcome.successes)} permissions for {email} "
            f"({len(outcome.failures)} grants skipped)"
        )
        return outcome

    async def _resolve_grant(self, grant: Grant) -> List[ResolvedPermission]:
        table_scoped = is_table_scoped(grant.role)
        address = parse_table_id(grant.table_id, allow_dataset=table_scoped)

        if not table_scoped:
            return [self._build(grant, address, grant.experiment, is_admin=False)]

        if address.table_name is not None:
            return await self._expand_table(grant, address)

        # Dataset-wide admin grant: every table in the dataset
        try:
            tables = await asyncio.to_thread(
                self.gateway.list_tables, address.project_id, address.dataset_name
            )
        except QueryError as e:
            logger.warning(f"Error listing tables for dataset {address.qualified}: {e}")
            return [self._build(grant, address, grant.experiment, is_admin=True)]

        logger.info(f"Found {len(tables)} tables in dataset {address.qualified}")
        entries: List[ResolvedPermission] = []
        for table_name in tables:
            table_address = address._replace(table_name=table_name)
            try:
                names = await asyncio.to_thread(self.fetch_experiment_names, table_address)
            except (QueryError, InvalidRequestError) as e:
                # Tables without the experiment layout or with unquotable names are skipped
                logger.info(f"Skipping table {table_address.qualified}: {e}")
                continue
            entries.extend(self._build(grant, table_address, name, is_admin=True) for name in names)
        return entries

    async def _expand_table(self, grant: Grant, address: TableAddress) -> List[ResolvedPermission]:
        try:
            names = await asyncio.to_thread(self.fetch_experiment_names, address)
        except QueryError as e:
            logger.warning(
                f"Error fetching experiment names for table {address.qualified}, "
                f"falling back to grant experiment {grant.experiment!r}: {e}"
            )
            return [self._build(grant, address, grant.experiment, is_admin=True)]
        logger.info(f"Found {len(names)} experiments in table {address.qualified}")
        return [self._build(grant, address, name, is_admin=True) for name in names]

    def _build(
        self,
        grant: Grant,
        address: TableAddress,
        experiment_name: Optional[str],
        is_admin: bool,
    ) -> ResolvedPermission:
        return ResolvedPermission(
            email=grant.email,
            owner=grant.owner,
            experiment_name=experiment_name,
            mac_address=grant.mac_address,
            role=grant.role,
            valid_until=grant.valid_until,
            project_id=address.project_id,
            dataset_name=address.dataset_name,
            table_id=address.qualified,
            access_level=get_access_level(grant.role),
            is_admin=is_admin,
        )
