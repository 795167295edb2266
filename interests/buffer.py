"""
Day-bucketed interest aggregation.

DailyInterestsBuffer folds batches of (visit, classification results) into

    day -> result type -> namespace -> interest -> InterestAccumulator

and tracks domain popularity overall and per interest (DomainIndex). The day
tree and domain index are written through to a StateStore after every batch.

Emitting follows a watermark: the newest day is still accumulating, every
older day is closed.

    buffer = DailyInterestsBuffer(StateStore(JsonFileBackend(path)))
    buffer.ingest(batch)
    if buffer.emit_ready():
        closed_days = buffer.flush()   # everything but the newest day

drain() is the force flush: it empties the whole day tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from . import dates
from .config import RESERVED_MARKER, UNCATEGORIZED, BufferConfig
from .store import StateStore


logger = logging.getLogger(__name__)

NO_VISIT_ID = -1


class MalformedEntryError(ValueError):
    """A batch entry that cannot be ingested."""


# ---------------------------------------------------------------------------
# Typed records
# ---------------------------------------------------------------------------

@dataclass
class InterestAccumulator:
    """Per day/type/namespace/interest statistics."""
    hosts: dict[str, int] = field(default_factory=dict)
    visit_ids: list = field(default_factory=list)
    subcats: dict[str, Any] = field(default_factory=dict)

    def merge(self, host: str, visit_ids: Sequence, visit_count: int, subcat: Any) -> None:
        self.hosts[host] = self.hosts.get(host, 0) + visit_count
        self.visit_ids.extend(visit_ids)
        for visit_id in visit_ids:
            self.subcats[str(visit_id)] = subcat

    def to_dict(self) -> dict:
        return {
            "hosts": dict(self.hosts),
            "visitIDs": list(self.visit_ids),
            "subcats": dict(self.subcats),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InterestAccumulator":
        return cls(
            hosts=dict(data.get("hosts") or {}),
            visit_ids=list(data.get("visitIDs") or []),
            subcats=dict(data.get("subcats") or {}),
        )

    def absorb(self, other: "InterestAccumulator") -> None:
        for host, count in other.hosts.items():
            self.hosts[host] = self.hosts.get(host, 0) + count
        self.visit_ids.extend(other.visit_ids)
        self.subcats.update(other.subcats)


@dataclass
class HostVisits:
    count: int = 0
    visit_id: Any = NO_VISIT_ID

    def add(self, visit_count: int, visit_id: Any) -> None:
        if self.visit_id == NO_VISIT_ID:
            self.visit_id = visit_id
        self.count += visit_count


@dataclass
class DomainIndex:
    """Host visit counts overall and per interest, with first visit IDs."""
    all: dict[str, HostVisits] = field(default_factory=dict)
    by_interest: dict[str, dict[str, HostVisits]] = field(default_factory=dict)

    def add(self, host: str, visit_count: int, visit_id: Any, interest: str | None = None) -> None:
        if not host:
            return
        hosts = self.all
        if interest:
            hosts = self.by_interest.setdefault(interest, {})
        hosts.setdefault(host, HostVisits()).add(visit_count, visit_id)

    def to_dict(self) -> dict:
        def _hosts(hosts: dict[str, HostVisits]) -> dict:
            return {h: {"count": v.count, "visitID": v.visit_id} for h, v in hosts.items()}

        return {
            "all": _hosts(self.all),
            "byInterest": {interest: _hosts(hosts) for interest, hosts in self.by_interest.items()},
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "DomainIndex":
        def _hosts(raw: dict) -> dict[str, HostVisits]:
            return {
                h: HostVisits(count=int(v.get("count", 0)), visit_id=v.get("visitID", NO_VISIT_ID))
                for h, v in (raw or {}).items()
            }

        data = data or {}
        return cls(
            all=_hosts(data.get("all")),
            by_interest={i: _hosts(h) for i, h in (data.get("byInterest") or {}).items()},
        )


# day -> type -> namespace -> interest -> accumulator
DayTree = dict[str, dict[str, dict[str, dict[str, InterestAccumulator]]]]


def get_or_create(
    tree: dict,
    path: Sequence[str],
    factory: Callable[[], Any] = InterestAccumulator,
):
    """Resolve path in a nested dict, creating missing levels; returns the leaf."""
    node = tree
    for key in path[:-1]:
        node = node.setdefault(key, {})
    leaf = node.get(path[-1])
    if leaf is None:
        leaf = node[path[-1]] = factory()
    return leaf


def tree_to_dict(tree: DayTree) -> dict:
    return {
        day: {
            rtype: {
                ns: {interest: acc.to_dict() for interest, acc in interests.items()}
                for ns, interests in namespaces.items()
            }
            for rtype, namespaces in types.items()
        }
        for day, types in tree.items()
    }


def tree_from_dict(data: dict | None) -> DayTree:
    return {
        str(day): {
            rtype: {
                ns: {interest: InterestAccumulator.from_dict(acc) for interest, acc in interests.items()}
                for ns, interests in namespaces.items()
            }
            for rtype, namespaces in types.items()
        }
        for day, types in (data or {}).items()
    }


def merge_trees(target: DayTree, source: DayTree) -> None:
    """Fold every accumulator of source into target, creating paths as needed."""
    for day, types in source.items():
        for rtype, namespaces in types.items():
            for ns, interests in namespaces.items():
                for interest, acc in interests.items():
                    get_or_create(target, (day, rtype, ns, interest)).absorb(acc)


def sorted_day_keys(keys) -> list[str]:
    """Day keys, newest first."""
    return sorted(keys, key=int, reverse=True)


# ---------------------------------------------------------------------------
# Batch entry planning
# ---------------------------------------------------------------------------

@dataclass
class _EntryPlan:
    domain_updates: list[tuple] = field(default_factory=list)
    interest_updates: list[tuple] = field(default_factory=list)


def _first_interest(interests: Sequence) -> dict:
    for item in interests:
        if item is not None:
            return item
    raise MalformedEntryError("result has no non-null interest")


def _plan_entry(entry: dict) -> _EntryPlan:
    """Compute every update for one batch entry without touching state."""
    try:
        details = entry["details"]
        host = details.get("host") or ""
        namespace = str(details.get("namespace") or "")
        visit_ids = details["visitIDs"]
        date_visits = entry["dateVisits"]
        results = entry.get("results")
        if results is None:
            results = details.get("results") or []

        days = []
        for date, count in date_visits.items():
            day = str(int(date))
            ids = list(visit_ids[date] if date in visit_ids else visit_ids[str(date)])
            days.append((day, int(count), ids, ids[0] if ids else NO_VISIT_ID))

        plan = _EntryPlan()
        for day, count, ids, first_id in days:
            plan.domain_updates.append((host, count, first_id, None))

        for result in results:
            if result is None:
                continue
            # a bare {category, subcat} record stands for its own interest list
            interests = result["interests"] if "interests" in result else [result]
            first = _first_interest(interests)
            category = first["category"]
            subcat = first.get("subcat")
            if not isinstance(category, str):
                raise MalformedEntryError(f"category must be a string, got {category!r}")
            if category == UNCATEGORIZED or RESERVED_MARKER in category:
                continue
            for day, count, ids, first_id in days:
                plan.domain_updates.append((host, count, first_id, category))
                plan.interest_updates.append(((day, str(result["type"]), namespace, category), host, ids, count, subcat))
        return plan
    except MalformedEntryError:
        raise
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        raise MalformedEntryError(f"{type(exc).__name__}: {exc}") from exc


# ---------------------------------------------------------------------------
# Buffer
# ---------------------------------------------------------------------------

class DailyInterestsBuffer:
    """Persisted day-bucketed interest accumulator with watermark emits."""

    def __init__(
        self,
        store: StateStore | None = None,
        config: BufferConfig | None = None,
        today: Callable[[], int] = dates.today,
    ):
        self.store = store if store is not None else StateStore()
        self.config = config or BufferConfig()
        self.today = today
        self.days_from_today: int | None = None
        self.load()

    @property
    def _pending_key(self) -> str:
        return f"{self.config.root_key}:pendingEmit"

    def load(self) -> None:
        self.days: DayTree = tree_from_dict(self.store.get(self.config.root_key))
        self.domains = DomainIndex.from_dict(self.store.get("domains"))
        self._pending: dict | None = self.store.get(self._pending_key)

    def save(self) -> None:
        self.store.state[self.config.root_key] = tree_to_dict(self.days)
        self.store.state["domains"] = self.domains.to_dict()
        if self._pending is None:
            self.store.state.pop(self._pending_key, None)
        else:
            self.store.state[self._pending_key] = self._pending
        self.store.save()

    # -- ingest --------------------------------------------------------------

    def _commit(self, plan: _EntryPlan) -> None:
        for host, count, visit_id, interest in plan.domain_updates:
            self.domains.add(host, count, visit_id, interest)
        for path, host, ids, count, subcat in plan.interest_updates:
            get_or_create(self.days, path).merge(host, ids, count, subcat)

    def ingest(self, batch: Sequence[dict]) -> int:
        """Fold a batch into state. Malformed entries are logged and skipped.

        Not idempotent: ingesting the same batch twice counts it twice.
        Returns the number of committed entries.
        """
        committed = 0
        for index, entry in enumerate(batch):
            try:
                plan = _plan_entry(entry)
            except MalformedEntryError as exc:
                logger.warning("Skipping malformed batch entry %d: %s", index, exc)
                continue
            self._commit(plan)
            committed += 1
        if committed:
            self.save()
        logger.debug("Ingested %d/%d batch entries", committed, len(batch))
        return committed

    # -- emit ----------------------------------------------------------------

    def day_keys(self) -> list[str]:
        return sorted_day_keys(self.days)

    def emit_ready(self) -> bool:
        """Stage every day but the newest for flush(); False with fewer than two days."""
        day_keys = self.day_keys()
        if len(day_keys) < 2:
            return False

        staged = tree_from_dict(self._pending)
        for day in day_keys[1:]:
            merge_trees(staged, {day: self.days.pop(day)})
        self._pending = tree_to_dict(staged)
        self.save()
        return True

    def _note_days_from_today(self, day_keys: Sequence[str]) -> None:
        if day_keys:
            self.days_from_today = self.today() - int(sorted_day_keys(day_keys)[0])

    def flush(self) -> dict:
        """Return and forget the days staged by emit_ready()."""
        if self._pending is None:
            logger.debug("flush() called with nothing staged")
            return {}
        results = self._pending
        self._pending = None
        self.save()
        self._note_days_from_today(list(results))
        logger.info("Flushed %d closed day(s): %s", len(results), ", ".join(sorted_day_keys(results)))
        return results

    def drain(self) -> dict:
        """Force flush: return every resident day (and anything staged), then empty the buffer."""
        merged = tree_from_dict(self._pending)
        merge_trees(merged, self.days)
        results = tree_to_dict(merged)
        self.days = {}
        self._pending = None
        self.save()
        self._note_days_from_today(list(results))
        logger.info("Drained %d day(s)", len(results))
        return results

    def clear(self) -> None:
        """Discard all day buckets. The domain index is kept."""
        self.days = {}
        self._pending = None
        self.save()

    # -- views ---------------------------------------------------------------

    def get_interests(self) -> dict:
        return tree_to_dict(self.days)

    def get_domains(self) -> dict:
        return self.domains.to_dict()
