"""
Taxonomy Manager.

WHAT THIS DOES:
Owns the ordered set of trust debt categories:
- register: add categories to the active set (validated as a whole)
- rebalance: atomically swap the active set for a regenerated one
- snapshot: hand a build an immutable, versioned view of the active set
- resolve: look up any category ever registered, active or not

WHY AN EXPLICIT OBJECT (NOT MODULE STATE):
Several analyses can run side by side (one per subject, one per branch...).
Each gets the manager it was given, so they cannot step on each other and
tests can build throwaway taxonomies.

ATOMICITY:
register, rebalance and snapshot all take the same lock. A build that
snapshots before a rebalance sees the complete old set; one that snapshots
after sees the complete new set. Never a mix.

USAGE:
    manager = TaxonomyManager()
    result = manager.register([
        Category(code="A", name="security"),
        Category(code="B", name="reliability"),
        Category(code="A1", name="secrets", parent_code="A", depth=1),
    ])
    result.raise_for_errors()

    snapshot = manager.snapshot()
"""

import logging
import threading
from dataclasses import replace
from typing import Iterable, Optional, Sequence

from intentguard.services.taxonomy.models import (
    Category,
    ChangeKind,
    OrderingViolation,
    RebalanceEntry,
    RebalanceResult,
    TaxonomySnapshot,
    ValidationResult,
    ViolationRule,
    new_stable_id,
    shortlex_key,
)
from intentguard.services.taxonomy.ordering import validate_categories, validate_order

logger = logging.getLogger(__name__)


class TaxonomyManager:
    """
    Versioned store of taxonomy categories.

    Holds every category record ever registered (keyed by stable_id) plus
    the ordered active set and an append-only rebalance history.
    """

    def __init__(
        self,
        records: Iterable[Category] = (),
        history: Iterable[RebalanceEntry] = (),
        version: int = 0,
    ):
        """
        Initialize the manager, optionally from persisted state.

        Args:
            records: Every known category, active and inactive
            history: Previously written rebalance entries
            version: Version counter to resume from
        """
        self._lock = threading.RLock()
        self._records: dict[str, Category] = {}
        for record in records:
            self._records[record.stable_id] = record

        self._active: tuple[Category, ...] = tuple(
            sorted(
                (c for c in self._records.values() if c.active),
                key=lambda c: shortlex_key(c.code),
            )
        )
        self._history: list[RebalanceEntry] = list(history)
        self._version = version

    # =========================================================================
    # READS
    # =========================================================================

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> TaxonomySnapshot:
        """Consistent view of the active set at the current version."""
        with self._lock:
            return TaxonomySnapshot(version=self._version, categories=self._active)

    def active_categories(self) -> tuple[Category, ...]:
        with self._lock:
            return self._active

    def resolve(self, stable_id: str) -> Optional[Category]:
        """Look up a category by stable_id, whether or not it is still active."""
        with self._lock:
            return self._records.get(stable_id)

    def all_records(self) -> list[Category]:
        with self._lock:
            return list(self._records.values())

    def history(self) -> tuple[RebalanceEntry, ...]:
        with self._lock:
            return tuple(self._history)

    # =========================================================================
    # REGISTER
    # =========================================================================

    def register(self, categories: Sequence[Category]) -> ValidationResult:
        """
        Add categories to the active set.

        The delta must already be in ShortLex order. It is then merged with
        the current active set and the ENTIRE merged set is validated, so a
        child can be registered under a parent that is already active.
        Nothing is activated unless the whole set is valid.

        Args:
            categories: New categories, in ShortLex order

        Returns:
            ValidationResult (check .valid or call .raise_for_errors())
        """
        with self._lock:
            delta_violations = validate_order(categories)
            if delta_violations:
                result = ValidationResult(violations=delta_violations, checked=len(categories))
                logger.warning(
                    f"Register rejected: delta out of order ({result.error.message})"
                )
                return result

            retired = self._reused_stable_ids(categories)
            if retired:
                return ValidationResult(violations=retired, checked=len(categories))

            merged = sorted(
                list(self._active) + [replace(c, active=True) for c in categories],
                key=lambda c: shortlex_key(c.code),
            )
            result = validate_categories(merged)
            if not result.valid:
                return result

            for category in merged:
                self._records[category.stable_id] = category
            self._active = tuple(merged)
            self._version += 1

            logger.info(
                f"Registered {len(categories)} categories "
                f"(active={len(self._active)}, version={self._version})"
            )
            return result

    def _reused_stable_ids(self, categories: Sequence[Category]) -> list[OrderingViolation]:
        """A stable_id that was ever registered can never be registered again."""
        violations = []
        for k, category in enumerate(categories):
            existing = self._records.get(category.stable_id)
            if existing is not None:
                violations.append(OrderingViolation(
                    rule=ViolationRule.DUPLICATE_STABLE_ID,
                    position=k,
                    first_code=existing.code,
                    second_code=category.code,
                    message=f"stable_id '{category.stable_id}' already belongs to '{existing.code}'",
                ))
        return violations

    # =========================================================================
    # REBALANCE
    # =========================================================================

    def rebalance(self, new_categories: Sequence[Category], reason: str) -> RebalanceResult:
        """
        Replace the active set with a regenerated one.

        Steps (all under the lock):
        1. Validate the new set exactly as given
        2. Match each new category to its predecessor: every explicit
           `supersedes` first, then same name for the rest
        3. Mint fresh stable_ids for every new record
        4. Deactivate the old set, activate the new one
        5. Append a history entry for each added, recoded or removed category

        If step 1 fails, the previously active set stays fully active.

        Args:
            new_categories: The complete new taxonomy, in ShortLex order
            reason: Why the rebalance happened (kept in the history)

        Returns:
            RebalanceResult with the activated/deactivated sets and entries
        """
        with self._lock:
            validation = validate_categories(new_categories)
            if validation.valid:
                validation.violations.extend(self._predecessor_violations(new_categories))
            if not validation.valid:
                logger.warning(
                    f"Rebalance rejected, keeping version {self._version} active: "
                    f"{validation.error.message}"
                )
                return RebalanceResult(validation=validation, version=self._version)

            predecessors = self._match_predecessors(new_categories)
            next_version = self._version + 1

            activated = []
            entries = []
            claimed: set[str] = set()

            for category, predecessor in zip(new_categories, predecessors):
                record = replace(
                    category,
                    stable_id=new_stable_id(),
                    active=True,
                    supersedes=predecessor.stable_id if predecessor else None,
                )
                activated.append(record)

                if predecessor is None:
                    entries.append(RebalanceEntry(
                        change=ChangeKind.ADDED,
                        reason=reason,
                        version=next_version,
                        stable_id_new=record.stable_id,
                        new_code=record.code,
                    ))
                    continue

                claimed.add(predecessor.stable_id)
                if predecessor.code != record.code:
                    entries.append(RebalanceEntry(
                        change=ChangeKind.RECODED,
                        reason=reason,
                        version=next_version,
                        stable_id_old=predecessor.stable_id,
                        stable_id_new=record.stable_id,
                        old_code=predecessor.code,
                        new_code=record.code,
                    ))

            for old in self._active:
                if old.stable_id not in claimed:
                    entries.append(RebalanceEntry(
                        change=ChangeKind.REMOVED,
                        reason=reason,
                        version=next_version,
                        stable_id_old=old.stable_id,
                        old_code=old.code,
                    ))

            deactivated = tuple(replace(c, active=False) for c in self._active)
            for record in deactivated:
                self._records[record.stable_id] = record
            for record in activated:
                self._records[record.stable_id] = record

            self._active = tuple(activated)
            self._history.extend(entries)
            self._version = next_version

            logger.info(
                f"Rebalanced taxonomy to version {self._version}: "
                f"{len(activated)} active, {len(deactivated)} retired, "
                f"{len(entries)} history entries ({reason})"
            )

            return RebalanceResult(
                validation=validation,
                version=self._version,
                activated=self._active,
                deactivated=deactivated,
                entries=tuple(entries),
            )

    def _predecessor_violations(self, categories: Sequence[Category]) -> list[OrderingViolation]:
        """Explicit `supersedes` must name an active category, at most once."""
        active_ids = {c.stable_id for c in self._active}
        claimed_by: dict[str, Category] = {}
        violations = []

        for k, category in enumerate(categories):
            if category.supersedes is None:
                continue
            if category.supersedes not in active_ids:
                violations.append(OrderingViolation(
                    rule=ViolationRule.UNKNOWN_PREDECESSOR,
                    position=k,
                    first_code=category.code,
                    second_code=None,
                    message=f"'{category.code}' supersedes '{category.supersedes}', which is not active",
                ))
            elif category.supersedes in claimed_by:
                violations.append(OrderingViolation(
                    rule=ViolationRule.DUPLICATE_PREDECESSOR,
                    position=k,
                    first_code=claimed_by[category.supersedes].code,
                    second_code=category.code,
                    message=(
                        f"'{claimed_by[category.supersedes].code}' and '{category.code}' "
                        f"both supersede '{category.supersedes}'"
                    ),
                ))
            else:
                claimed_by[category.supersedes] = category
        return violations

    def _match_predecessors(self, categories: Sequence[Category]) -> list[Optional[Category]]:
        """
        Predecessor of each new category, by position.

        Explicit `supersedes` links are honoured first. Name matching only
        fills in the rest and never takes a predecessor already claimed.
        """
        old_by_id = {c.stable_id: c for c in self._active}
        old_by_name = {c.name: c for c in self._active}

        predecessors: list[Optional[Category]] = [None] * len(categories)
        claimed: set[str] = set()

        for k, category in enumerate(categories):
            if category.supersedes is not None:
                predecessors[k] = old_by_id[category.supersedes]
                claimed.add(category.supersedes)

        for k, category in enumerate(categories):
            if category.supersedes is not None:
                continue
            old = old_by_name.get(category.name)
            if old is not None and old.stable_id not in claimed:
                predecessors[k] = old
                claimed.add(old.stable_id)

        return predecessors
