"""
Permission Audit Logger.

WHAT THIS DOES:
Keeps an append-only trail of every permission decision (ALLOW and DENY)
with its overlap, sovereignty and shortfalls, and answers aggregate
questions about it: allow rate, averages, which actions get denied most.

USAGE:
    audit = PermissionAuditLogger(db)
    await audit.log(decision)
    stats = await audit.stats(subject="repo-main")
    drift = await audit.count_drift_events("repo-main", since=record.computed_at)
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from intentguard.models.records import PermissionAuditRow
from intentguard.services.permissions.models import PermissionDecision

logger = logging.getLogger(__name__)

# How many entries the most-denied list keeps
TOP_DENIED_LIMIT = 5


@dataclass
class AuditStats:
    """Aggregates over a (filtered) slice of the audit log."""

    total_decisions: int = 0
    allow_count: int = 0
    deny_count: int = 0
    allow_rate: float = 0.0
    average_overlap: float = 0.0
    average_sovereignty: float = 0.0
    top_denied_actions: list[tuple[str, int]] = field(default_factory=list)


class PermissionAuditLogger:
    """Writes and queries the permission_audit table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(self, decision: PermissionDecision) -> PermissionAuditRow:
        """Append one decision. Shortfalls are stored even for ALLOW."""
        row = PermissionAuditRow(
            decision=decision.decision_label,
            action_name=decision.action_name,
            subject=decision.subject,
            overlap=decision.overlap,
            sovereignty=decision.sovereignty,
            threshold=decision.threshold,
            min_sovereignty=decision.min_sovereignty,
            mode=decision.mode.value,
            failed_categories=[str(s) for s in decision.failed_categories],
            created_at=decision.timestamp,
        )
        self.db.add(row)
        await self.db.commit()
        return row

    async def query(
        self,
        decision: Optional[str] = None,
        action_name: Optional[str] = None,
        subject: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[PermissionAuditRow]:
        """Audit rows matching every given filter, oldest first."""
        stmt = select(PermissionAuditRow)
        if decision is not None:
            stmt = stmt.where(PermissionAuditRow.decision == decision)
        if action_name is not None:
            stmt = stmt.where(PermissionAuditRow.action_name == action_name)
        if subject is not None:
            stmt = stmt.where(PermissionAuditRow.subject == subject)
        if since is not None:
            stmt = stmt.where(PermissionAuditRow.created_at >= since)
        if until is not None:
            stmt = stmt.where(PermissionAuditRow.created_at <= until)

        result = await self.db.execute(stmt.order_by(PermissionAuditRow.id))
        return list(result.scalars().all())

    async def count_drift_events(self, subject: str, since: Optional[datetime] = None) -> int:
        """Number of DENY decisions for a subject, optionally only those since a timestamp."""
        denied = await self.query(decision="DENY", subject=subject, since=since)
        return len(denied)

    async def stats(
        self,
        action_name: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> AuditStats:
        """
        Aggregate statistics over the audit log.

        Returns:
            AuditStats (all zeros when nothing matches)
        """
        rows = await self.query(action_name=action_name, subject=subject)
        if not rows:
            return AuditStats()

        allow_count = sum(1 for r in rows if r.decision == "ALLOW")
        denied = Counter(r.action_name for r in rows if r.decision == "DENY")

        return AuditStats(
            total_decisions=len(rows),
            allow_count=allow_count,
            deny_count=len(rows) - allow_count,
            allow_rate=allow_count / len(rows),
            average_overlap=sum(r.overlap for r in rows) / len(rows),
            average_sovereignty=sum(r.sovereignty for r in rows) / len(rows),
            top_denied_actions=denied.most_common(TOP_DENIED_LIMIT),
        )
