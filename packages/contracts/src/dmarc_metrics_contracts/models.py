"""Pydantic value types for DMARC daily metrics.

All models are frozen: a field catalog is defined once at process start
and never mutated.
"""

from __future__ import annotations

from datetime import date, timedelta
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RecordColumn(str, Enum):
    """Report-record columns a predicate may test."""

    DISPOSITION = "disposition"
    SPF_RESULT = "spfresult"
    DKIM_RESULT = "dkimresult"
    SPF_ALIGN = "spf_align"
    DKIM_ALIGN = "dkim_align"


_AUTH_RESULTS = frozenset(
    {"none", "neutral", "pass", "fail", "softfail", "temperror", "permerror"}
)

# Values each column can hold in the report parser's schema
COLUMN_VALUES: dict[RecordColumn, frozenset[str]] = {
    RecordColumn.DISPOSITION: frozenset({"none", "quarantine", "reject"}),
    RecordColumn.SPF_RESULT: _AUTH_RESULTS,
    RecordColumn.DKIM_RESULT: _AUTH_RESULTS,
    RecordColumn.SPF_ALIGN: frozenset({"fail", "pass", "unknown"}),
    RecordColumn.DKIM_ALIGN: frozenset({"fail", "pass", "unknown"}),
}


class _ColumnTest(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: RecordColumn
    value: str

    @model_validator(mode="after")
    def _value_in_domain(self) -> "_ColumnTest":
        allowed = COLUMN_VALUES[self.column]
        if self.value not in allowed:
            raise ValueError(
                f"{self.value!r} is not a valid value for {self.column.value} "
                f"(expected one of {sorted(allowed)})"
            )
        return self

    def _literal(self) -> str:
        # Values are drawn from a closed set without quotes; escape anyway.
        return "'" + self.value.replace("'", "''") + "'"


class Equals(_ColumnTest):
    """``column = value``."""

    kind: Literal["eq"] = "eq"

    def to_sql(self, alias: str = "rr") -> str:
        return f"{alias}.{self.column.value} = {self._literal()}"

    def matches(self, record: Mapping[str, Any]) -> bool:
        return record.get(self.column.value) == self.value


class NotEquals(_ColumnTest):
    """``column IS DISTINCT FROM value``; NULL counts as "not equal"."""

    kind: Literal["ne"] = "ne"

    def to_sql(self, alias: str = "rr") -> str:
        return f"{alias}.{self.column.value} IS DISTINCT FROM {self._literal()}"

    def matches(self, record: Mapping[str, Any]) -> bool:
        return record.get(self.column.value) != self.value


class AllOf(BaseModel):
    """Conjunction of column tests."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["all"] = "all"
    terms: tuple[Union[Equals, NotEquals], ...] = Field(min_length=1)

    def to_sql(self, alias: str = "rr") -> str:
        return " AND ".join(term.to_sql(alias) for term in self.terms)

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(term.matches(record) for term in self.terms)


Predicate = Annotated[Union[Equals, NotEquals, AllOf], Field(discriminator="kind")]


class DataField(BaseModel):
    """One named daily metric, optionally filtered by a predicate.

    A field without a predicate counts every record in the window.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=r"^[a-z_][a-z0-9_]*$")
    description: str
    predicate: Optional[Predicate] = None

    def matches(self, record: Mapping[str, Any]) -> bool:
        return self.predicate is None or self.predicate.matches(record)


class DateWindow(BaseModel):
    """Half-open calendar window ``[start, end_exclusive)`` covering one day.

    Reports are attributed entirely to their ``mindate``.
    """

    model_config = ConfigDict(frozen=True)

    start: date
    end_exclusive: date

    @model_validator(mode="after")
    def _one_day(self) -> "DateWindow":
        if self.end_exclusive != self.start + timedelta(days=1):
            raise ValueError("DateWindow must span exactly one day")
        return self

    @classmethod
    def for_day(cls, day: date) -> "DateWindow":
        return cls(start=day, end_exclusive=day + timedelta(days=1))


class CompiledAggregateQuery(BaseModel):
    """One INSERT statement computing every field in a single round trip.

    Positional parameters: ``$1`` is the target date, then one
    ``(start, end_exclusive)`` pair per field in catalog order.
    """

    model_config = ConfigDict(frozen=True)

    sql: str
    field_names: tuple[str, ...]

    @property
    def parameter_count(self) -> int:
        return 1 + 2 * len(self.field_names)

    def bind(self, target_date: date) -> tuple[date, ...]:
        """Flatten the parameter list for ``target_date``."""
        window = DateWindow.for_day(target_date)
        params: list[date] = [target_date]
        for _ in self.field_names:
            params.extend((window.start, window.end_exclusive))
        return tuple(params)


class MetricsRow(BaseModel):
    """One persisted row of the ``metric`` table."""

    model_config = ConfigDict(frozen=True)

    day: date
    values: dict[str, int]

    def get(self, name: str) -> Optional[int]:
        """Return the value of ``name``, or None when the column is absent or NULL."""
        return self.values.get(name)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "MetricsRow":
        """Build from a database record; NULL columns are dropped."""
        values = {
            key: int(value)
            for key, value in record.items()
            if key != "date" and value is not None
        }
        return cls(day=record["date"], values=values)
