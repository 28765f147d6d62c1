from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, Optional, TypeVar

T = TypeVar("T")

ResultStatus = Literal["ok", "empty", "error"]


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    """
    Outcome of a store read/write.

      ok    → data holds the answer
      empty → the store answered, there was simply nothing there
      error → the store failed; reason says why (data is None)
    """

    status: ResultStatus
    data: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, data: T) -> "QueryResult[T]":
        return cls(status="ok", data=data)

    @classmethod
    def empty(cls, data: Optional[T] = None) -> "QueryResult[T]":
        return cls(status="empty", data=data)

    @classmethod
    def failed(cls, reason: str) -> "QueryResult[T]":
        return cls(status="error", reason=reason)

    @classmethod
    def from_rows(cls, rows: T) -> "QueryResult[T]":
        return cls.ok(rows) if rows else cls.empty(rows)

    @property
    def is_ok(self) -> bool:
        return self.status == "ok"

    @property
    def is_empty(self) -> bool:
        return self.status == "empty"

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    def unwrap_or(self, default: T) -> T:
        if self.status == "error" or self.data is None:
            return default
        return self.data
