"""Change-feed event envelope and subscription filters.

Wire format (one JSON object per published row change):
    {"table": "orders", "event_type": "update", "row": {...}}

Payloads are validated here, at the ingestion boundary; rows are typed
into domain records by each bounded context (MessageRecord, OrderRecord).
"""
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.mk_common.enums import FeedEventType
from src.mk_common.errors import MalformedEventError


class _ChangeEventPayload(BaseModel):
    table: str
    event_type: FeedEventType
    row: dict[str, Any]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: FeedEventType
    row: dict[str, Any] = field(default_factory=dict)

    @property
    def row_id(self) -> str | None:
        row_id = self.row.get("id")
        return str(row_id) if row_id is not None else None

    def to_json(self) -> str:
        return json.dumps(
            {"table": self.table, "event_type": self.event_type.value, "row": self.row},
            default=str,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ChangeEvent":
        try:
            payload = _ChangeEventPayload.model_validate_json(raw)
        except PydanticValidationError as exc:
            raise MalformedEventError(str(exc.errors()[0]["msg"])) from exc
        return cls(table=payload.table, event_type=payload.event_type, row=payload.row)


@dataclass(frozen=True)
class RowFilter:
    """OR of AND-ed column equality clauses.

    RowFilter.where(to_user=u).or_where(from_user=u)
        -> to_user = u OR from_user = u
    """

    clauses: tuple[tuple[tuple[str, str], ...], ...] = ()

    @classmethod
    def where(cls, **equals: str) -> "RowFilter":
        return cls(clauses=(tuple(sorted(equals.items())),))

    def or_where(self, **equals: str) -> "RowFilter":
        return RowFilter(clauses=self.clauses + (tuple(sorted(equals.items())),))

    def matches(self, row: Mapping[str, Any]) -> bool:
        if not self.clauses:
            return True
        return any(
            all(str(row.get(column)) == value for column, value in clause)
            for clause in self.clauses
        )
