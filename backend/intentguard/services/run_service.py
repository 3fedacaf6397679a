"""
Run Service — Persists grade records and the matrix cells behind them.

WHAT THIS DOES:
Stores each graded run as an append-only grade_records row plus one
trust_debt_cells row per matrix cell, and reads them back as the grade
timeline and identity source for a subject.

WHY CELLS ARE KEYED BY STABLE_ID:
Codes change on rebalance; stable_ids never do. A cell written before a
rebalance still resolves to the category it measured, through the
taxonomy manager, long after that category is inactive.

There is no update or delete here on purpose.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from intentguard.models.records import GradeRecordRow, TrustDebtCellRow
from intentguard.services.grading.history import compute_trend
from intentguard.services.grading.models import CategoryScore, Grade, GradeRecord, Trend
from intentguard.services.matrix.models import TrustDebtMatrix

logger = logging.getLogger(__name__)


def record_from_row(row: GradeRecordRow) -> GradeRecord:
    """Rebuild the immutable GradeRecord from its row."""
    return GradeRecord(
        total_units=row.total_units,
        grade=Grade(row.grade),
        upper_sum=row.upper_sum,
        lower_sum=row.lower_sum,
        diagonal_sum=row.diagonal_sum,
        computed_at=row.computed_at,
        subject=row.subject,
        taxonomy_version=row.taxonomy_version,
        asymmetry_ratio=row.asymmetry_ratio,
        orthogonality_score=row.orthogonality_score,
        category_scores=tuple(CategoryScore(**entry) for entry in row.category_scores or []),
    )


class RunService:
    """
    Service for grade record storage.

    Handles:
    - Saving a graded run with its cells
    - Reading the timeline and latest record per subject
    - Reading the cells of a past run
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save_run(self, record: GradeRecord, matrix: TrustDebtMatrix) -> GradeRecordRow:
        """
        Persist a grade record and every cell of its matrix.

        Args:
            record: The graded run
            matrix: The trust debt matrix the record was graded from

        Returns:
            The stored row (with its id)
        """
        row = GradeRecordRow(
            subject=record.subject,
            total_units=record.total_units,
            grade=record.grade.value,
            upper_sum=record.upper_sum,
            lower_sum=record.lower_sum,
            diagonal_sum=record.diagonal_sum,
            asymmetry_ratio=record.asymmetry_ratio,
            orthogonality_score=record.orthogonality_score,
            taxonomy_version=record.taxonomy_version,
            category_scores=[
                {
                    "stable_id": s.stable_id,
                    "code": s.code,
                    "name": s.name,
                    "weight": s.weight,
                    "units": s.units,
                    "health_score": s.health_score,
                }
                for s in record.category_scores
            ],
            computed_at=record.computed_at,
        )
        self.db.add(row)
        await self.db.flush()

        for cell in matrix.cells():
            self.db.add(TrustDebtCellRow(
                record_id=row.id,
                row_stable_id=cell.row_stable_id,
                col_stable_id=cell.col_stable_id,
                row_code=cell.row_code,
                col_code=cell.col_code,
                region=cell.region.value,
                value=cell.value,
                intent_value=cell.intent_value,
                reality_value=cell.reality_value,
            ))

        await self.db.commit()

        logger.info(
            f"Saved run #{row.id} for '{record.subject}' "
            f"({record.grade.value}, {matrix.size * matrix.size} cells)"
        )
        return row

    async def get(self, record_id: int) -> Optional[GradeRecordRow]:
        return await self.db.get(GradeRecordRow, record_id)

    async def history(self, subject: str) -> list[GradeRecordRow]:
        """All runs for a subject, oldest first."""
        result = await self.db.execute(
            select(GradeRecordRow)
            .where(GradeRecordRow.subject == subject)
            .order_by(GradeRecordRow.id)
        )
        return list(result.scalars().all())

    async def latest(self, subject: str) -> Optional[GradeRecord]:
        """The most recent grade record for a subject, if any."""
        result = await self.db.execute(
            select(GradeRecordRow)
            .where(GradeRecordRow.subject == subject)
            .order_by(GradeRecordRow.id.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return record_from_row(row) if row else None

    async def trend(self, subject: str) -> Trend:
        rows = await self.history(subject)
        return compute_trend([record_from_row(r) for r in rows])

    async def cells(self, record_id: int) -> list[TrustDebtCellRow]:
        """Cells of one run, in row-major order."""
        result = await self.db.execute(
            select(TrustDebtCellRow)
            .where(TrustDebtCellRow.record_id == record_id)
            .order_by(TrustDebtCellRow.id)
        )
        return list(result.scalars().all())


async def save_run(record: GradeRecord, matrix: TrustDebtMatrix, db: AsyncSession) -> GradeRecordRow:
    """Convenience function to save a graded run."""
    service = RunService(db)
    return await service.save_run(record, matrix)
