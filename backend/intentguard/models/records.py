"""
SQLAlchemy models for the persisted, derived state.

Tables:
- category_records:  every taxonomy category ever registered (active or not)
- taxonomy_history:  append-only rebalance entries
- taxonomy_state:    single row holding the current taxonomy version
- grade_records:     append-only grade timeline, one row per run
- trust_debt_cells:  the matrix cells behind a grade record, keyed by stable_id
- permission_audit:  every ALLOW/DENY decision made through the API

JSON columns keep this portable between SQLite (tests, local) and Postgres.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from intentguard.database import Base
from intentguard.services.taxonomy.models import utcnow


class CategoryRecord(Base):
    """
    A taxonomy category, keyed by its immutable stable_id.

    Rows are never deleted. A rebalance flips `active` off on the old rows
    and inserts new ones.
    """

    __tablename__ = "category_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    stable_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    code: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(200))
    parent_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    depth: Mapped[int] = mapped_column(Integer, default=0)
    weight: Mapped[float] = mapped_column(Float, default=1.0)
    keywords: Mapped[list[str]] = mapped_column(JSON, default=list)

    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    supersedes: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<CategoryRecord {self.code} name={self.name} active={self.active}>"


class TaxonomyHistoryEntry(Base):
    """One added/recoded/removed line of a rebalance."""

    __tablename__ = "taxonomy_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    version: Mapped[int] = mapped_column(Integer, index=True)
    change: Mapped[str] = mapped_column(String(20))
    reason: Mapped[str] = mapped_column(Text)

    stable_id_old: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    stable_id_new: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    old_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    new_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class TaxonomyState(Base):
    """Singleton row (id=1) with the current taxonomy version."""

    __tablename__ = "taxonomy_state"

    id: Mapped[int] = mapped_column(primary_key=True)
    version: Mapped[int] = mapped_column(Integer, default=0)


class GradeRecordRow(Base):
    """
    A persisted grade record. Append-only: no code path updates or deletes.

    category_scores holds the per-category breakdown as a list of dicts
    (stable_id, code, name, weight, units, health_score).
    """

    __tablename__ = "grade_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    subject: Mapped[str] = mapped_column(String(200), index=True)

    total_units: Mapped[float] = mapped_column(Float)
    grade: Mapped[str] = mapped_column(String(1))
    upper_sum: Mapped[float] = mapped_column(Float)
    lower_sum: Mapped[float] = mapped_column(Float)
    diagonal_sum: Mapped[float] = mapped_column(Float)

    asymmetry_ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    orthogonality_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    taxonomy_version: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    category_scores: Mapped[list[dict]] = mapped_column(JSON, default=list)

    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<GradeRecordRow subject={self.subject} grade={self.grade} units={self.total_units:.1f}>"


class TrustDebtCellRow(Base):
    """One cell of the trust debt matrix behind a grade record."""

    __tablename__ = "trust_debt_cells"

    id: Mapped[int] = mapped_column(primary_key=True)
    record_id: Mapped[int] = mapped_column(ForeignKey("grade_records.id"), index=True)

    row_stable_id: Mapped[str] = mapped_column(String(64))
    col_stable_id: Mapped[str] = mapped_column(String(64))
    # Codes as they were when the run happened; stable_ids are what resolve
    row_code: Mapped[str] = mapped_column(String(64))
    col_code: Mapped[str] = mapped_column(String(64))

    region: Mapped[str] = mapped_column(String(10))
    value: Mapped[float] = mapped_column(Float)
    intent_value: Mapped[float] = mapped_column(Float)
    reality_value: Mapped[float] = mapped_column(Float)


class PermissionAuditRow(Base):
    """An ALLOW or DENY decision, as returned to the caller."""

    __tablename__ = "permission_audit"

    id: Mapped[int] = mapped_column(primary_key=True)
    decision: Mapped[str] = mapped_column(String(5), index=True)
    action_name: Mapped[str] = mapped_column(String(100), index=True)
    subject: Mapped[str] = mapped_column(String(200), index=True)

    overlap: Mapped[float] = mapped_column(Float)
    sovereignty: Mapped[float] = mapped_column(Float)
    threshold: Mapped[float] = mapped_column(Float)
    min_sovereignty: Mapped[float] = mapped_column(Float)
    mode: Mapped[str] = mapped_column(String(20))

    # e.g. ["security: 0.65 < 0.7"]
    failed_categories: Mapped[list[str]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
