"""
Fluent PostgREST query builder.

Builds the query-string filters PostgREST understands (``col=eq.value``,
``col=in.("a","b")``, ``order=col.desc.nullslast`` ...) and executes them
through a :class:`~dashworker.infrastructure.supabase.client.SupabaseClient`.
"""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Literal, Optional, Tuple

if TYPE_CHECKING:
    from .client import SupabaseClient

CountOption = Literal["exact", "planned", "estimated"]

_WHITESPACE = re.compile(r"\s+")


@dataclass
class QueryResult:
    """Rows returned by a query and, when requested, the exact row count."""

    data: List[Dict[str, Any]] = field(default_factory=list)
    count: Optional[int] = None


def format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def quote_list_item(value: Any) -> str:
    text = format_value(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """Extract the total from a ``Content-Range: 0-9/123`` header."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


class QueryBuilder:
    """Accumulates filters for one table or view, then executes once."""

    def __init__(self, client: "SupabaseClient", table: str):
        self._client = client
        self._table = table
        self._columns = "*"
        self._filters: List[Tuple[str, str]] = []
        self._order: List[str] = []
        self._offset: Optional[int] = None
        self._limit: Optional[int] = None
        self._count: Optional[CountOption] = None
        self._head = False

    @property
    def table(self) -> str:
        return self._table

    def select(
        self,
        columns: str = "*",
        count: Optional[CountOption] = None,
        head: bool = False,
    ) -> "QueryBuilder":
        self._columns = _WHITESPACE.sub("", columns) or "*"
        self._count = count
        self._head = head
        return self

    def _filter(self, column: str, operator: str, value: str) -> "QueryBuilder":
        self._filters.append((column, f"{operator}.{value}"))
        return self

    def eq(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "eq", format_value(value))

    def neq(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "neq", format_value(value))

    def gt(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "gt", format_value(value))

    def gte(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "gte", format_value(value))

    def lt(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "lt", format_value(value))

    def in_(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        items = ",".join(quote_list_item(v) for v in values)
        return self._filter(column, "in", f"({items})")

    def is_(self, column: str, value: Optional[bool]) -> "QueryBuilder":
        return self._filter(column, "is", format_value(value))

    def is_not(self, column: str, value: Optional[bool]) -> "QueryBuilder":
        return self._filter(column, "not.is", format_value(value))

    def ilike(self, column: str, pattern: str) -> "QueryBuilder":
        return self._filter(column, "ilike", pattern)

    def order(
        self,
        column: str,
        ascending: bool = True,
        nulls_first: Optional[bool] = None,
    ) -> "QueryBuilder":
        term = f"{column}.{'asc' if ascending else 'desc'}"
        if nulls_first is not None:
            term += ".nullsfirst" if nulls_first else ".nullslast"
        self._order.append(term)
        return self

    def range(self, start: int, end: int) -> "QueryBuilder":
        """Inclusive row range, as in ``Range: start-end``."""
        self._offset = start
        self._limit = end - start + 1
        return self

    def limit(self, count: int) -> "QueryBuilder":
        self._limit = count
        return self

    def build_params(self) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = [("select", self._columns)]
        params.extend(self._filters)
        if self._order:
            params.append(("order", ",".join(self._order)))
        if self._offset is not None:
            params.append(("offset", str(self._offset)))
        if self._limit is not None:
            params.append(("limit", str(self._limit)))
        return params

    def build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._count:
            headers["Prefer"] = f"count={self._count}"
        return headers

    async def execute(self) -> QueryResult:
        response = await self._client.request(
            "HEAD" if self._head else "GET",
            f"/rest/v1/{self._table}",
            resource=self._table,
            params=self.build_params(),
            headers=self.build_headers(),
        )
        count = parse_content_range(response.headers.get("content-range"))
        if self._head or not response.content:
            return QueryResult(data=[], count=count)
        payload = self._client.decode_json(response, self._table)
        if isinstance(payload, dict):
            payload = [payload]
        return QueryResult(data=payload, count=count)
