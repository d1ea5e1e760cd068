"""
PostGIS-backed park store.

This module implements the ParkStore contract on PostgreSQL/PostGIS with
SQLAlchemy Core and GeoAlchemy2. Canonical park records live in a single
``parks`` table; boundaries are stored in a geometry column and exchanged with
the pipeline as EWKT text ("SRID=4326;POLYGON((...))").

Key Features:
- Table definition shared by creation, reads and writes
- Filtered queries (state, agency, data source, coordinate null/range checks)
- INSERT ... RETURNING / UPDATE ... RETURNING so callers get stored values back
- Boundary geometry round-trips through ST_GeomFromEWKT / ST_AsEWKT
- SQLAlchemy errors surfaced as StoreError so ingestion can retry them

Example Usage:
    engine = get_postgres_engine()
    store = PostgresParkStore(engine, logger)
    store.ensure_table_exists()
    records = store.query(ParkQuery(state="NC"))
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from geoalchemy2 import Geometry
from sqlalchemy import (
    Column,
    DateTime,
    Engine,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.exc import SQLAlchemyError

from config.settings import config
from scripts.collectors.park_schemas import ParkRecord
from scripts.database.park_store import ParkQuery, ParkStore, StoreError


def get_postgres_engine() -> Engine:
    """
    Create a SQLAlchemy engine for PostgreSQL/PostGIS using configuration.

    Returns:
        Engine: SQLAlchemy engine instance configured for PostgreSQL/PostGIS

    Raises:
        ValueError: If any required configuration is missing
    """
    config.validate_for_database_operations()
    return create_engine(config.get_database_url())


def build_parks_table(metadata: MetaData, table_name: str | None = None) -> Table:
    """Define the canonical parks table."""
    return Table(
        table_name or config.PARKS_TABLE,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("source_id", String),
        Column("name", Text, nullable=False),
        Column("state", String(8), nullable=False),
        Column("agency", Text),
        Column("agency_full_name", Text),
        Column("description", Text),
        Column("website", Text),
        Column("phone", String),
        Column("email", String),
        Column("address", Text),
        Column("county", String),
        Column("acres", Float),
        Column("category", String),
        Column("designation_type", String),
        Column("public_access", String),
        Column("amenities", ARRAY(Text)),
        Column("activities", ARRAY(Text)),
        Column("latitude", Float),
        Column("longitude", Float),
        Column("data_source", Text),
        Column("data_source_priority", Integer, nullable=False, server_default="0"),
        Column("data_quality_score", Integer, nullable=False, server_default="0"),
        Column(
            "created_at",
            DateTime(timezone=True),
            nullable=False,
            server_default=text("NOW()"),
        ),
        Column(
            "last_updated_at",
            DateTime(timezone=True),
            nullable=False,
            server_default=text("NOW()"),
        ),
        Column(
            "boundary", Geometry(geometry_type="GEOMETRY", srid=config.DEFAULT_SRID)
        ),  # Geometry column last
        extend_existing=True,
    )


class PostgresParkStore(ParkStore):
    """
    ParkStore implementation on PostgreSQL/PostGIS.

    The store is stateless apart from the engine; every operation runs in
    its own transaction via ``engine.begin()``.
    """

    def __init__(
        self,
        engine: Engine,
        logger: logging.Logger | None = None,
        table_name: str | None = None,
    ):
        """
        Initialize the store.

        Args:
            engine (Engine): SQLAlchemy engine for database connections
            logger (logging.Logger | None): Logger for operation tracking.
                                            If None, creates a default logger.
            table_name (str | None): Override for the parks table name
        """
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)
        self.metadata = MetaData()
        self.parks_table = build_parks_table(self.metadata, table_name)

    def ensure_table_exists(self) -> None:
        """
        Ensure the PostGIS extension and the parks table exist.

        Raises:
            StoreError: If table creation fails
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
            self.metadata.create_all(
                self.engine, tables=[self.parks_table], checkfirst=True
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to create {self.parks_table.name} table: {e}")
            raise StoreError(f"Failed to create {self.parks_table.name} table: {e}") from e

        self.logger.info(f"Ensured {self.parks_table.name} table exists in database")

    # ====================================
    # ROW CONVERSION
    # ====================================

    def _returning_columns(self) -> list:
        """Select list with the boundary rendered back to EWKT."""
        table = self.parks_table
        columns: list = [c for c in table.columns if c.name != "boundary"]
        columns.append(table.c.boundary.ST_AsEWKT().label("boundary"))
        return columns

    def _row_to_record(self, row: Any) -> ParkRecord:
        values = dict(row)
        values["amenities"] = values.get("amenities") or []
        values["activities"] = values.get("activities") or []
        return ParkRecord.model_validate(values)

    def _record_values(self, record: ParkRecord) -> dict[str, Any]:
        values = record.model_dump(exclude={"id"})
        # Let the database default timestamps when the caller did not set them
        for column in ("created_at", "last_updated_at"):
            if values.get(column) is None:
                values.pop(column, None)
        return values

    def _where_clauses(self, filters: ParkQuery) -> list:
        table = self.parks_table
        clauses = []
        if filters.state is not None:
            clauses.append(table.c.state == filters.state)
        if filters.agency is not None:
            clauses.append(table.c.agency == filters.agency)
        if filters.data_source is not None:
            clauses.append(table.c.data_source == filters.data_source)
        if filters.ids is not None:
            clauses.append(table.c.id.in_(filters.ids))
        if filters.missing_coordinates is True:
            clauses.append(
                (table.c.latitude.is_(None)) | (table.c.longitude.is_(None))
            )
        if filters.missing_coordinates is False:
            clauses.append(table.c.latitude.is_not(None))
            clauses.append(table.c.longitude.is_not(None))
        if filters.min_latitude is not None:
            clauses.append(table.c.latitude >= filters.min_latitude)
        if filters.max_latitude is not None:
            clauses.append(table.c.latitude <= filters.max_latitude)
        if filters.min_longitude is not None:
            clauses.append(table.c.longitude >= filters.min_longitude)
        if filters.max_longitude is not None:
            clauses.append(table.c.longitude <= filters.max_longitude)
        return clauses

    # ====================================
    # STORE CONTRACT
    # ====================================

    def query(self, filters: ParkQuery | None = None) -> list[ParkRecord]:
        filters = filters or ParkQuery()
        stmt = (
            select(*self._returning_columns())
            .where(*self._where_clauses(filters))
            .order_by(self.parks_table.c.id)
        )
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)

        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to query {self.parks_table.name}: {e}")
            raise StoreError(f"Query failed: {e}") from e

        return [self._row_to_record(row) for row in rows]

    def insert(self, record: ParkRecord) -> ParkRecord:
        stmt = (
            insert(self.parks_table)
            .values(**self._record_values(record))
            .returning(*self._returning_columns())
        )
        try:
            with self.engine.begin() as conn:
                row = conn.execute(stmt).mappings().one()
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to insert park '{record.name}': {e}")
            raise StoreError(f"Insert failed for '{record.name}': {e}") from e

        self.logger.debug(f"Inserted park {row['id']}: {record.name} ({record.state})")
        return self._row_to_record(row)

    def update(self, record_id: int, fields: dict[str, Any]) -> ParkRecord:
        values = {k: v for k, v in fields.items() if k != "id"}
        unknown = set(values) - set(self.parks_table.c.keys())
        if unknown:
            raise StoreError(f"Unknown fields for update: {sorted(unknown)}")

        stmt = (
            update(self.parks_table)
            .where(self.parks_table.c.id == record_id)
            .values(**values)
            .returning(*self._returning_columns())
        )
        try:
            with self.engine.begin() as conn:
                row = conn.execute(stmt).mappings().one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to update park {record_id}: {e}")
            raise StoreError(f"Update failed for record {record_id}: {e}") from e

        if row is None:
            raise StoreError(f"Record {record_id} does not exist")
        return self._row_to_record(row)

    def delete(self, record_ids: Iterable[int]) -> int:
        ids = list(record_ids)
        if not ids:
            return 0

        stmt = delete(self.parks_table).where(self.parks_table.c.id.in_(ids))
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to delete parks {ids}: {e}")
            raise StoreError(f"Delete failed: {e}") from e

        self.logger.info(f"Deleted {result.rowcount} park records")
        return result.rowcount
