from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple, Union

from patent_search.services.search.policies import DEFAULT_POLICY, SearchPolicy

PATENT_FIELDS: Tuple[str, ...] = (
    "id",
    "patent_number",
    "title",
    "abstract",
    "assignee",
    "filing_date",
)
KEYWORD_FIELDS: Tuple[str, ...] = ("title", "abstract", "assignee")
DATE_FIELD = "filing_date"
ASSIGNEE_FIELD = "assignee"


@dataclass(frozen=True)
class SearchFilter:
    """
    User-editable search filters.

    Instances are frozen, so the object handed to a search or an export is
    already the snapshot: later edits produce a new filter via `replace`.
    Dates are ISO `YYYY-MM-DD` strings; an empty string means "not set".
    """
    keyword: str = ""
    assignee: str = ""
    from_date: str = ""
    to_date: str = ""

    @property
    def trimmed_keyword(self) -> str:
        return self.keyword.strip()

    def replace(self, **changes: str) -> "SearchFilter":
        return replace(self, **changes)


def is_empty_search(flt: SearchFilter, policy: SearchPolicy = DEFAULT_POLICY) -> bool:
    """True when the filter must not hit the backend at all."""
    return (
        len(flt.trimmed_keyword) < policy.min_keyword_length
        and not flt.assignee
        and not flt.from_date
        and not flt.to_date
    )


# ---------------------------------------------------------------------------
# Constraint vocabulary understood by every executor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnyFieldContains:
    """Case-insensitive substring match on any of `fields` (OR-combined)."""
    fields: Tuple[str, ...]
    text: str

    @property
    def pattern(self) -> str:
        return f"%{self.text}%"


@dataclass(frozen=True)
class FieldEquals:
    field: str
    value: str


@dataclass(frozen=True)
class FieldRange:
    """Inclusive range; either bound may be missing."""
    field: str
    gte: Optional[str] = None
    lte: Optional[str] = None


@dataclass(frozen=True)
class FieldNotNull:
    field: str


Constraint = Union[AnyFieldContains, FieldEquals, FieldRange, FieldNotNull]


@dataclass(frozen=True)
class Ordering:
    field: str
    descending: bool = True


@dataclass(frozen=True)
class RowRange:
    """Zero-based, inclusive row window. `end == start - 1` selects no rows."""
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0:
            raise ValueError("start must be >= 0")
        if self.end < self.start - 1:
            raise ValueError("end must be >= start - 1")

    @classmethod
    def empty(cls) -> "RowRange":
        return cls(0, -1)

    @property
    def size(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class QueryDescription:
    """
    Backend-neutral description of one query.

    `constraints` and `ordering` define which rows match and in which order;
    `count` and `rows` are execution options that never change that
    selection. Use `with_rows` / `with_count` to derive variants.
    """
    constraints: Tuple[Constraint, ...]
    ordering: Ordering
    fields: Tuple[str, ...] = PATENT_FIELDS
    count: bool = False
    rows: Optional[RowRange] = None

    @property
    def selection(self) -> Tuple[Tuple[Constraint, ...], Ordering]:
        return self.constraints, self.ordering

    def with_rows(self, rows: RowRange) -> "QueryDescription":
        return replace(self, rows=rows)

    def with_count(self, count: bool = True) -> "QueryDescription":
        return replace(self, count=count)


def build_constraints(
    flt: SearchFilter,
    policy: SearchPolicy = DEFAULT_POLICY,
) -> Tuple[Constraint, ...]:
    constraints = []

    keyword = flt.trimmed_keyword
    # Shorter keywords are ignored so assignee/date-only searches still work
    if len(keyword) >= policy.min_keyword_length:
        constraints.append(AnyFieldContains(fields=KEYWORD_FIELDS, text=keyword))

    if flt.assignee:
        constraints.append(FieldEquals(field=ASSIGNEE_FIELD, value=flt.assignee))

    if flt.from_date or flt.to_date:
        constraints.append(
            FieldRange(
                field=DATE_FIELD,
                gte=flt.from_date or None,
                lte=flt.to_date or None,
            )
        )

    return tuple(constraints)


def build_query(
    flt: SearchFilter,
    *,
    count_mode: bool = False,
    policy: SearchPolicy = DEFAULT_POLICY,
) -> QueryDescription:
    """
    Translate a filter snapshot into a query description.

    Search and export both go through here, so equal filters always select
    the same rows in the same order (newest filing date first).
    """
    return QueryDescription(
        constraints=build_constraints(flt, policy),
        ordering=Ordering(field=DATE_FIELD, descending=True),
        count=count_mode,
    )


def build_assignee_query(policy: SearchPolicy = DEFAULT_POLICY) -> QueryDescription:
    """Query feeding the assignee dropdown: non-null names, A to Z, capped."""
    return QueryDescription(
        constraints=(FieldNotNull(field=ASSIGNEE_FIELD),),
        ordering=Ordering(field=ASSIGNEE_FIELD, descending=False),
        fields=(ASSIGNEE_FIELD,),
        rows=RowRange(0, policy.assignee_limit - 1),
    )
