"""
database.py — Relational Persistence (SQLAlchemy)

SQLAlchemy implementations of the repository interfaces from `repositories.py`.
Used when PHARMAML_DATABASE_URL is set; any SQLAlchemy-supported database works
(SQLite for local runs and tests, PostgreSQL in production).

Tables:
    - pharmaml_supplier_configs: one row per supplier, upserted on save.
    - pharmaml_transmissions:    one row per attempt, inserted pending then finalized once.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import SupplierConfig, TransmissionRecord, TransmissionStatus
from .repositories import SupplierConfigRepository, TransmissionRepository


class Base(DeclarativeBase):
    pass


class SupplierConfigRow(Base):
    __tablename__ = "pharmaml_supplier_configs"

    supplier_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    endpoint_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    dispatcher_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    dispatcher_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    secret_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    officine_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country_code: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)


class TransmissionRow(Base):
    __tablename__ = "pharmaml_transmissions"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True, nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    supplier_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    request_xml: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_xml: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    supplier_order_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    order_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


_CONFIG_FIELDS = (
    "enabled", "endpoint_url", "dispatcher_code", "dispatcher_id",
    "secret_key", "officine_id", "country_code",
)

_FINAL_FIELDS = (
    "response_xml", "status", "error_code", "message",
    "supplier_order_number", "duration_ms", "finalized_at",
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the tzinfo, values are always written in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: TransmissionRow) -> TransmissionRecord:
    return TransmissionRecord(
        id=row.id,
        order_id=row.order_id,
        supplier_id=row.supplier_id,
        request_xml=row.request_xml,
        response_xml=row.response_xml,
        status=TransmissionStatus(row.status),
        error_code=row.error_code,
        message=row.message,
        supplier_order_number=row.supplier_order_number,
        order_number=row.order_number,
        duration_ms=row.duration_ms,
        created_at=_aware(row.created_at),
        finalized_at=_aware(row.finalized_at),
    )


def create_db_engine(database_url: str) -> Engine:
    """
    Creates the engine and the tables if they do not exist yet.
    In-memory SQLite gets a StaticPool so every session sees the same database.
    """
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    return engine


class SqlSupplierConfigRepository(SupplierConfigRepository):

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def load(self, supplier_id: str) -> Optional[SupplierConfig]:
        with self.session_factory() as session:
            row = session.get(SupplierConfigRow, supplier_id)
            if row is None:
                return None
            return SupplierConfig(**{name: getattr(row, name) for name in _CONFIG_FIELDS})

    def save(self, supplier_id: str, config: SupplierConfig) -> None:
        # Single-record upsert in one transaction.
        with self.session_factory.begin() as session:
            row = session.get(SupplierConfigRow, supplier_id)
            if row is None:
                row = SupplierConfigRow(supplier_id=supplier_id)
                session.add(row)
            for name in _CONFIG_FIELDS:
                setattr(row, name, getattr(config, name))


class SqlTransmissionRepository(TransmissionRepository):

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def insert(self, record: TransmissionRecord) -> None:
        with self.session_factory.begin() as session:
            session.add(TransmissionRow(
                id=record.id,
                order_id=record.order_id,
                supplier_id=record.supplier_id,
                request_xml=record.request_xml,
                response_xml=record.response_xml,
                status=record.status.value,
                error_code=record.error_code,
                message=record.message,
                supplier_order_number=record.supplier_order_number,
                order_number=record.order_number,
                duration_ms=record.duration_ms,
                created_at=record.created_at,
                finalized_at=record.finalized_at,
            ))

    def finalize(self, record: TransmissionRecord) -> None:
        values = {name: getattr(record, name) for name in _FINAL_FIELDS}
        values["status"] = record.status.value
        stmt = (
            update(TransmissionRow)
            .where(TransmissionRow.id == record.id)
            .where(TransmissionRow.status == TransmissionStatus.PENDING.value)
            .values(**values)
        )
        with self.session_factory.begin() as session:
            if session.execute(stmt).rowcount != 1:
                raise KeyError(f"Transmission {record.id} introuvable ou déjà finalisée")

    def get(self, record_id: str) -> Optional[TransmissionRecord]:
        with self.session_factory() as session:
            row = self._get_row(session, record_id)
            return _to_record(row) if row else None

    def query(self, order_id=None, supplier_id=None, limit=None) -> List[TransmissionRecord]:
        stmt = select(TransmissionRow)
        if order_id is not None:
            stmt = stmt.where(TransmissionRow.order_id == order_id)
        if supplier_id is not None:
            stmt = stmt.where(TransmissionRow.supplier_id == supplier_id)
        stmt = stmt.order_by(TransmissionRow.created_at.desc(), TransmissionRow.seq.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.session_factory() as session:
            return [_to_record(row) for row in session.scalars(stmt)]

    @staticmethod
    def _get_row(session: Session, record_id: str) -> Optional[TransmissionRow]:
        return session.scalars(
            select(TransmissionRow).where(TransmissionRow.id == record_id)
        ).first()


def create_sql_repositories(database_url: str):
    """
    Returns (SqlSupplierConfigRepository, SqlTransmissionRepository) sharing one engine.
    """
    engine = create_db_engine(database_url)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    return SqlSupplierConfigRepository(session_factory), SqlTransmissionRepository(session_factory)
