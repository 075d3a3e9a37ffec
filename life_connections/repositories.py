"""Repository pattern for data access."""

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any

import asyncpg
import structlog

from life_connections.database import Database
from life_connections.engine.dates import coerce_date
from life_connections.engine.models import Connection, DomainSeries, ValueType
from life_connections.engine.series_builder import (
    DailyRecord,
    build_domain_series,
    infer_value_type,
    reconcile_value_types,
)
from life_connections.errors import ConnectionStoreError, DataSourceError

logger = structlog.get_logger()

_DB_ERRORS = (asyncpg.PostgresError, OSError, RuntimeError)


class DailyRecordRepository:
    """Daily domain records; the engine's domain data source."""

    def __init__(self, db: Database):
        self.db = db

    async def add_records(self, user_id: str, records: list[DailyRecord]) -> int:
        """
        Insert daily records. Returns the number of rows written.

        The value type is decided once per (domain, metric), merged with the
        type already stored for that metric, and written on every row.

        Raises:
            SeriesBuildError: If a metric's value types cannot be merged
        """
        if not records:
            return 0

        query = """
        INSERT INTO daily_records (
            user_id, domain, metric, day, value, value_type, unit, display_name
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
        """
        grouped: dict[tuple[str, str], list[DailyRecord]] = defaultdict(list)
        for r in records:
            grouped[(r.domain, r.metric)].append(r)

        async with self.db.transaction() as conn:
            stored = await self._stored_value_types(conn, user_id)
            types: dict[tuple[str, str], ValueType] = {}
            for (domain, metric), group in grouped.items():
                key = f"{domain}.{metric}"
                previous = stored.get((domain, metric), set())
                value_type = reconcile_value_types(
                    key, previous | {infer_value_type(group, key)}
                )
                types[(domain, metric)] = value_type
                if previous - {value_type}:
                    await conn.execute(
                        """
                        UPDATE daily_records SET value_type = $1
                        WHERE user_id = $2 AND domain = $3 AND metric = $4
                        """,
                        value_type.value,
                        user_id,
                        domain,
                        metric,
                    )
                    logger.info("Widened stored value type", series=key, value_type=value_type.value)

            rows = [
                (
                    user_id,
                    r.domain,
                    r.metric,
                    coerce_date(r.date),
                    float(r.value),
                    types[(r.domain, r.metric)].value,
                    r.unit,
                    r.display_name,
                )
                for r in records
            ]
            await conn.executemany(query, rows)

        logger.info("Daily records stored", user_id=user_id, count=len(rows))
        return len(rows)

    @staticmethod
    async def _stored_value_types(conn: Any, user_id: str) -> dict[tuple[str, str], set[ValueType]]:
        rows = await conn.fetch(
            "SELECT DISTINCT domain, metric, value_type FROM daily_records WHERE user_id = $1",
            user_id,
        )
        stored: dict[tuple[str, str], set[ValueType]] = defaultdict(set)
        for row in rows:
            if row["value_type"]:
                stored[(row["domain"], row["metric"])].add(ValueType(row["value_type"]))
        return stored

    async def fetch_domain_series(
        self, user_id: str, domain: str, date_range: tuple[date, date]
    ) -> list[DomainSeries]:
        """
        Build the series of one domain for a user over a date range.

        Binary metrics are filled with 0 on days where the user tracked any
        data but the activity was not recorded.

        Raises:
            DataSourceError: If the database cannot be queried
        """
        start, end = date_range
        records_query = """
        SELECT domain, metric, day, value, value_type, unit, display_name
        FROM daily_records
        WHERE user_id = $1 AND domain = $2 AND day BETWEEN $3 AND $4
        ORDER BY metric, day
        """
        tracked_query = """
        SELECT DISTINCT day FROM daily_records
        WHERE user_id = $1 AND day BETWEEN $2 AND $3
        """
        try:
            async with self.db.acquire() as conn:
                rows = await conn.fetch(records_query, user_id, domain, start, end)
                tracked = await conn.fetch(tracked_query, user_id, start, end)
        except _DB_ERRORS as e:
            raise DataSourceError(f"Failed to load '{domain}' records: {e}") from e

        records = [self._row_to_record(row) for row in rows]
        series = build_domain_series(
            records,
            start,
            end,
            min_days=1,
            absence_dates={row["day"] for row in tracked},
        )
        logger.debug("Domain series fetched", user_id=user_id, domain=domain, series=len(series))
        return series

    def _row_to_record(self, row: Any) -> DailyRecord:
        """Convert database row to DailyRecord."""
        value_type = ValueType(row["value_type"]) if row["value_type"] else None
        return DailyRecord(
            domain=row["domain"],
            metric=row["metric"],
            date=row["day"],
            value=row["value"],
            value_type=value_type,
            unit=row["unit"],
            display_name=row["display_name"],
        )


class ConnectionRepository:
    """Persisted connection sets, replaced wholesale per user."""

    def __init__(self, db: Database):
        self.db = db

    async def replace_connections(self, user_id: str, connections: list[Connection]) -> None:
        """
        Atomically replace a user's connection set.

        Connections the user dismissed stay dismissed when a re-run finds the
        same pair again (ids are stable per user and pair).

        Raises:
            ConnectionStoreError: If the transaction fails; the prior set is kept
        """
        insert_query = """
        INSERT INTO life_connections (
            id, user_id, category, domain_a, domain_b, effect_size,
            payload, dismissed, detected_at, expires_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10)
        """
        try:
            async with self.db.transaction() as conn:
                dismissed = {
                    row["id"]
                    for row in await conn.fetch(
                        "SELECT id FROM life_connections WHERE user_id = $1 AND dismissed",
                        user_id,
                    )
                }
                rows = [self._connection_row(user_id, c, c.id in dismissed) for c in connections]
                await conn.execute("DELETE FROM life_connections WHERE user_id = $1", user_id)
                if rows:
                    await conn.executemany(insert_query, rows)
        except _DB_ERRORS as e:
            raise ConnectionStoreError(f"Failed to replace connections: {e}") from e

        logger.info(
            "Connections replaced",
            user_id=user_id,
            count=len(rows),
            kept_dismissed=sum(1 for row in rows if row[7]),
        )

    @staticmethod
    def _connection_row(user_id: str, c: Connection, was_dismissed: bool) -> tuple:
        dismissed = c.dismissed or was_dismissed
        return (
            c.id,
            user_id,
            c.category,
            f"{c.domain_a.type}.{c.domain_a.metric}",
            f"{c.domain_b.type}.{c.domain_b.metric}",
            c.metrics.effect_size,
            c.model_copy(update={"dismissed": dismissed}).model_dump_json(),
            dismissed,
            c.detected_at,
            c.expires_at,
        )

    async def get_for_user(
        self, user_id: str, include_dismissed: bool = False, limit: int = 50
    ) -> list[Connection]:
        """Get a user's connections, strongest first."""
        conditions = ["user_id = $1"]
        if not include_dismissed:
            conditions.append("dismissed = FALSE")
        where_clause = " AND ".join(conditions)
        query = f"""
        SELECT payload, dismissed FROM life_connections
        WHERE {where_clause}
        ORDER BY effect_size DESC
        LIMIT $2
        """
        rows = await self.db.fetch(query, user_id, limit)
        return [self._row_to_connection(row) for row in rows]

    async def count_for_user(self, user_id: str) -> int:
        """Count stored connections for a user."""
        return await self.db.fetchval(
            "SELECT COUNT(*) FROM life_connections WHERE user_id = $1", user_id
        )

    async def dismiss(self, connection_id: str) -> bool:
        """Hide a connection from listings. Returns False if it does not exist."""
        result = await self.db.execute(
            "UPDATE life_connections SET dismissed = TRUE WHERE id = $1", connection_id
        )
        return result.split()[-1] != "0"

    async def delete_expired(self, now: datetime | None = None) -> int:
        """Delete connections past their expiry. Returns count deleted."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute("DELETE FROM life_connections WHERE expires_at < $1", now)
        count = int(result.split()[-1]) if result else 0
        logger.info("Deleted expired connections", count=count)
        return count

    def _row_to_connection(self, row: Any) -> Connection:
        """Convert database row to Connection."""
        payload = row["payload"]
        if isinstance(payload, str):
            connection = Connection.model_validate_json(payload)
        else:
            connection = Connection.model_validate(payload)
        connection.dismissed = row["dismissed"]
        return connection
