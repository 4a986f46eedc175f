"""SQLAlchemy job store backend (Postgres, MySQL or SQLite)."""

import logging
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from queueprint.errors import StoreError
from queueprint.models import JobStatus, PrintJob

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_uuid() -> str:
    """Generate a UUID string for primary keys.

    Returns:
        str: UUID as 36-character string.
    """
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for job store models."""

    pass


class PrintJobRow(Base):
    """Shared print job table.

    Attributes:
        id: Primary key UUID.
        order_id: External order the label belongs to.
        label_url: Location of the label PDF.
        status: Job status (pending, printing, completed, failed).
        claimed_by: Unique id of the agent that claimed the job.
        claimed_at: When the job was claimed.
        printed_at: When printing completed.
        retries: Failed attempts recorded by producers or operators.
        last_tried_at: Last attempt timestamp.
        printer_name, copies, paper_size, orientation: Per-job overrides.
        created_at: Creation timestamp (queue order).
        updated_at: Last modification timestamp.
    """

    __tablename__ = "print_jobs"
    __table_args__ = (
        Index("ix_print_jobs_status_created", "status", "created_at"),
        Index("ix_print_jobs_claimed_by", "claimed_by"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    order_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    label_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, values_callable=lambda x: [e.value for e in x], native_enum=False),
        default=JobStatus.PENDING,
    )
    claimed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    printed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_tried_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    retries: Mapped[int] = mapped_column(Integer, default=0)
    printer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    copies: Mapped[int | None] = mapped_column(Integer, nullable=True)
    paper_size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    orientation: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


def create_store_engine(database_url: str) -> Engine:
    """Create an engine with settings suited to the backend.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        Engine: Configured engine.
    """
    # SQLite doesn't support pool_size/max_overflow
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True, pool_size=5, max_overflow=10)


class SqlJobStore:
    """Job store backed by a relational database through SQLAlchemy.

    The claim is one ``UPDATE`` guarded by ``status = 'pending' AND
    claimed_by IS NULL``; the affected row count tells the caller whether it
    won.
    """

    def __init__(self, engine: Engine):
        """Initialize the SQL store.

        Args:
            engine: SQLAlchemy engine.
        """
        self.engine = engine
        self.session_factory = sessionmaker(
            bind=engine, autoflush=False, expire_on_commit=False
        )

    @classmethod
    def from_url(cls, database_url: str) -> "SqlJobStore":
        return cls(create_store_engine(database_url))

    def create_tables(self) -> None:
        """Create the job table if it does not exist."""
        Base.metadata.create_all(bind=self.engine)

    def ping(self) -> None:
        try:
            with self.session_factory() as session:
                session.execute(select(PrintJobRow.id).limit(1))
        except SQLAlchemyError as e:
            raise StoreError(f"Job store query failed: {e}") from e

    def fetch_oldest_pending(self) -> PrintJob | None:
        query = (
            select(PrintJobRow)
            .where(
                PrintJobRow.status == JobStatus.PENDING,
                PrintJobRow.claimed_by.is_(None),
            )
            .order_by(PrintJobRow.created_at.asc())
            .limit(1)
        )
        try:
            with self.session_factory() as session:
                row = session.scalars(query).first()
                return PrintJob.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Error fetching print jobs: {e}") from e

    def get_job(self, job_id: str) -> PrintJob | None:
        try:
            with self.session_factory() as session:
                row = session.get(PrintJobRow, job_id)
                return PrintJob.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Error fetching print job: {e}") from e

    def claim(self, job_id: str, agent_id: str) -> PrintJob | None:
        now = _utcnow()
        stmt = (
            update(PrintJobRow)
            .where(
                PrintJobRow.id == job_id,
                PrintJobRow.status == JobStatus.PENDING,
                PrintJobRow.claimed_by.is_(None),
            )
            .values(
                status=JobStatus.PRINTING,
                claimed_by=agent_id,
                claimed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        with self.session_factory() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.debug(f"Job {job_id} already claimed by another agent")
                return None
            except SQLAlchemyError as e:
                session.rollback()
                raise StoreError(f"Error claiming print job: {e}") from e

            if result.rowcount != 1:
                logger.debug(f"Job {job_id} not available for claiming")
                return None

            try:
                row = session.get(PrintJobRow, job_id)
            except SQLAlchemyError as e:
                raise StoreError(f"Job {job_id} claimed but could not be read back: {e}") from e
            return PrintJob.model_validate(row)

    def _set(self, job_id: str, **values) -> None:
        values["updated_at"] = _utcnow()
        stmt = (
            update(PrintJobRow)
            .where(PrintJobRow.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self.session_factory() as session:
            try:
                session.execute(stmt)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise StoreError(f"Error updating print job status: {e}") from e

    def mark_completed(self, job_id: str) -> None:
        self._set(job_id, status=JobStatus.COMPLETED, printed_at=_utcnow())

    def mark_status(self, job_id: str, status: JobStatus) -> None:
        self._set(job_id, status=JobStatus(status))
