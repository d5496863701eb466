"""
Record query vocabulary shared by every RecordFetcher implementation.

Filters are small immutable variants combined with ``And`` / ``AnyOf``.
Report code builds them once per request so a scoping constraint attached to
one sub-fetch is attached to all of them.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Hashable, Iterable, Optional, Tuple, Union

from pydantic import Field

from core.schema_base import HTTPSchemaModel


class RecordKind(str, Enum):
    """Time-stamped record collections served by a fetcher."""

    TICKET = "ticket"
    STATUS_TRANSITION = "status_transition"
    OFFER = "offer"
    ATTENDANCE = "attendance"
    ACTIVITY_LOG = "activity_log"


class EntityKind(str, Enum):
    """Finite domain collections used to complete distributions."""

    ZONE = "zone"
    CUSTOMER = "customer"
    ASSET = "asset"
    PERSON = "person"
    TARGET = "target"


# Timestamp a ``window`` argument applies to, per record kind
WINDOW_FIELDS = {
    RecordKind.TICKET: "created_at",
    RecordKind.STATUS_TRANSITION: "changed_at",
    RecordKind.OFFER: "created_at",
    RecordKind.ATTENDANCE: "check_in_at",
    RecordKind.ACTIVITY_LOG: "start_time",
}


# =============================================================================
# Filter Variants
# =============================================================================


@dataclass(frozen=True)
class DateRange:
    """Inclusive range over a timestamp field; open-ended when a bound is None."""

    field: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class EqualsField:
    field: str
    value: Any


@dataclass(frozen=True)
class InSet:
    field: str
    values: FrozenSet[Hashable]

    def __init__(self, field: str, values: Iterable[Hashable]):
        object.__setattr__(self, "field", field)
        object.__setattr__(self, "values", frozenset(values))


@dataclass(frozen=True)
class NotNull:
    field: str


@dataclass(frozen=True)
class And:
    clauses: Tuple["Filter", ...] = ()

    def __init__(self, *clauses: "Filter"):
        flattened = []
        for clause in clauses:
            if clause is None:
                continue
            if isinstance(clause, And):
                flattened.extend(clause.clauses)
            else:
                flattened.append(clause)
        object.__setattr__(self, "clauses", tuple(flattened))


@dataclass(frozen=True)
class AnyOf:
    clauses: Tuple["Filter", ...] = ()

    def __init__(self, *clauses: "Filter"):
        object.__setattr__(self, "clauses", tuple(c for c in clauses if c is not None))


@dataclass(frozen=True)
class Related:
    """Match a record through its parent (``ticket`` for status transitions)."""

    relation: str
    where: "Filter"


Filter = Union[DateRange, EqualsField, InSet, NotNull, And, AnyOf, Related]

MATCH_ALL = And()


def window_filter(kind: RecordKind, window) -> Optional[DateRange]:
    """Translate a TimeWindow into a range on the kind's primary timestamp."""
    if window is None:
        return None
    return DateRange(WINDOW_FIELDS[kind], window.start, window.end)


# =============================================================================
# Grouped Results
# =============================================================================


class GroupCount(HTTPSchemaModel):
    key: Optional[Hashable] = None
    count: int = 0


class GroupAggregate(HTTPSchemaModel):
    key: Optional[Hashable] = None
    count: int = 0
    sums: Dict[str, float] = Field(default_factory=dict)
