"""
Taxonomy Repository — Persists TaxonomyManager state between restarts.

The manager itself is in-memory and synchronous (builds must not wait on
I/O mid-snapshot). This repository writes its state out after each change
and rebuilds a manager from the database at startup.

- category records: upserted by stable_id (only `active` ever changes)
- history: append-only; only entries not yet stored are inserted
- version: single row in taxonomy_state
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from intentguard.models.records import CategoryRecord, TaxonomyHistoryEntry, TaxonomyState
from intentguard.services.taxonomy.manager import TaxonomyManager
from intentguard.services.taxonomy.models import Category, ChangeKind, RebalanceEntry

logger = logging.getLogger(__name__)

STATE_ROW_ID = 1


def category_from_row(row: CategoryRecord) -> Category:
    return Category(
        code=row.code,
        name=row.name,
        parent_code=row.parent_code,
        depth=row.depth,
        weight=row.weight,
        keywords=tuple(row.keywords or ()),
        stable_id=row.stable_id,
        active=row.active,
        supersedes=row.supersedes,
        created_at=row.created_at,
    )


def entry_from_row(row: TaxonomyHistoryEntry) -> RebalanceEntry:
    return RebalanceEntry(
        change=ChangeKind(row.change),
        reason=row.reason,
        version=row.version,
        stable_id_old=row.stable_id_old,
        stable_id_new=row.stable_id_new,
        old_code=row.old_code,
        new_code=row.new_code,
        timestamp=row.timestamp,
    )


class TaxonomyRepository:
    """Saves and loads taxonomy manager state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, manager: TaxonomyManager) -> None:
        """Write the manager's records, new history entries and version."""
        existing = await self.db.execute(select(CategoryRecord))
        rows_by_id = {row.stable_id: row for row in existing.scalars().all()}

        for category in manager.all_records():
            row = rows_by_id.get(category.stable_id)
            if row is None:
                self.db.add(CategoryRecord(
                    stable_id=category.stable_id,
                    code=category.code,
                    name=category.name,
                    parent_code=category.parent_code,
                    depth=category.depth,
                    weight=category.weight,
                    keywords=list(category.keywords),
                    active=category.active,
                    supersedes=category.supersedes,
                    created_at=category.created_at,
                ))
            else:
                row.active = category.active

        stored = (await self.db.execute(select(func.count(TaxonomyHistoryEntry.id)))).scalar() or 0
        history = manager.history()
        for entry in history[stored:]:
            self.db.add(TaxonomyHistoryEntry(
                version=entry.version,
                change=entry.change.value,
                reason=entry.reason,
                stable_id_old=entry.stable_id_old,
                stable_id_new=entry.stable_id_new,
                old_code=entry.old_code,
                new_code=entry.new_code,
                timestamp=entry.timestamp,
            ))

        state = await self.db.get(TaxonomyState, STATE_ROW_ID)
        if state is None:
            self.db.add(TaxonomyState(id=STATE_ROW_ID, version=manager.version))
        else:
            state.version = manager.version

        await self.db.commit()
        logger.info(
            f"Saved taxonomy v{manager.version} "
            f"({len(manager.all_records())} records, {len(history) - stored} new history entries)"
        )

    async def load(self) -> TaxonomyManager:
        """Rebuild a manager from the database. Empty manager if nothing is stored."""
        records = await self.db.execute(select(CategoryRecord).order_by(CategoryRecord.id))
        history = await self.db.execute(
            select(TaxonomyHistoryEntry).order_by(TaxonomyHistoryEntry.id)
        )
        state = await self.db.get(TaxonomyState, STATE_ROW_ID)

        manager = TaxonomyManager(
            records=[category_from_row(r) for r in records.scalars().all()],
            history=[entry_from_row(r) for r in history.scalars().all()],
            version=state.version if state else 0,
        )
        logger.info(
            f"Loaded taxonomy v{manager.version} ({len(manager.active_categories())} active)"
        )
        return manager
