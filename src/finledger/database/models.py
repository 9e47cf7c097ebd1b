"""SQLAlchemy models for finledger database."""

from datetime import datetime, UTC
from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from finledger.domain.entities import MONEY_PLACES, QUANTITY_PLACES

Base = declarative_base()


class Account(Base):
    """Ledger account model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    institution = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    line_items = relationship("LineItem", back_populates="account", cascade="all, delete-orphan")
    statements = relationship("Statement", back_populates="account", cascade="all, delete-orphan")


class LineItem(Base):
    """Line item model. ``parent_id`` links the two legs of a transfer."""

    __tablename__ = "line_items"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    post_date = Column(Date, nullable=True)
    type = Column(String, nullable=True)
    description = Column(String, nullable=True)
    symbol = Column(String, nullable=True)
    quantity = Column(Numeric(18, QUANTITY_PLACES), nullable=False, default=0)
    price = Column(Numeric(18, QUANTITY_PLACES), nullable=False, default=0)
    commission = Column(Numeric(14, MONEY_PLACES), nullable=False, default=0)
    fee = Column(Numeric(14, MONEY_PLACES), nullable=False, default=0)
    amount = Column(Numeric(18, MONEY_PLACES), nullable=False)
    memo = Column(String, nullable=True)
    account_balance = Column(Numeric(18, MONEY_PLACES), nullable=True)
    cusip = Column(String, nullable=True)
    option_type = Column(String, nullable=True)
    option_strike = Column(Numeric(14, MONEY_PLACES), nullable=True)
    option_expiration = Column(Date, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    parent_id = Column(Integer, ForeignKey("line_items.id", ondelete="SET NULL"), nullable=True)
    imported_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    account = relationship("Account", back_populates="line_items")
    parent = relationship("LineItem", remote_side=[id], back_populates="children")
    children = relationship("LineItem", back_populates="parent", passive_deletes=True)


class NonDuplicateMark(Base):
    """A set of line items the user confirmed are not duplicates."""

    __tablename__ = "non_duplicate_marks"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    members = relationship(
        "NonDuplicateMember", back_populates="mark", cascade="all, delete-orphan"
    )


class NonDuplicateMember(Base):
    """Membership of one line item in a non-duplicate mark."""

    __tablename__ = "non_duplicate_members"

    id = Column(Integer, primary_key=True)
    mark_id = Column(Integer, ForeignKey("non_duplicate_marks.id"), nullable=False)
    line_item_id = Column(Integer, nullable=False, index=True)

    __table_args__ = (UniqueConstraint("mark_id", "line_item_id", name="uq_mark_line_item"),)

    mark = relationship("NonDuplicateMark", back_populates="members")


class ImportedChunk(Base):
    """Idempotency record of an applied batch-import chunk."""

    __tablename__ = "imported_chunks"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    chunk_key = Column(String(64), unique=True, nullable=False)
    item_count = Column(Integer, nullable=False)
    imported_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Statement(Base):
    """Custodial statement summary attached to an account."""

    __tablename__ = "statements"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    broker_name = Column(String, nullable=True)
    account_number = Column(String, nullable=True)
    account_name = Column(String, nullable=True)
    period = Column(String, nullable=True)
    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)
    closing_balance = Column(Numeric(18, MONEY_PLACES), nullable=True)
    total_nav = Column(Numeric(18, MONEY_PLACES), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    account = relationship("Account", back_populates="statements")
    rows = relationship("StatementRow", back_populates="statement", cascade="all, delete-orphan")


class StatementRow(Base):
    """One row of a statement sub-table, stored as a JSON payload."""

    __tablename__ = "statement_rows"

    id = Column(Integer, primary_key=True)
    statement_id = Column(Integer, ForeignKey("statements.id"), nullable=False)
    section = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)

    statement = relationship("Statement", back_populates="rows")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
