"""
munchies/core/query.py

Composable filter predicates for the places table.

A PlaceQuery is an ordered list of predicates + ordering + limit. It knows
nothing about where it runs; each places backend renders it:

  - to_sql()       → parameterized SQLite WHERE/ORDER BY (local dev, tests)
  - to_postgrest() → PostgREST query params (Supabase)

Every user-supplied value travels as a bound parameter (SQLite) or a PostgREST
literal (bare after eq./gte./lte., quoted inside in.() ov.{} and or=() lists),
never as filter grammar.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Literal, Sequence, Tuple

from munchies.core.contracts import BBox4, MapFilters

PredicateOp = Literal["eq", "in", "overlaps", "gte", "lte", "ilike_any"]

# Free-text search hits any one of these.
SEARCH_COLUMNS: Tuple[str, ...] = ("name", "city", "county", "address")

# JSON arrays in SQLite, text[] in Postgres.
ARRAY_COLUMNS = frozenset({"cuisines", "tags"})

FULL_PRICE_RANGE: Tuple[int, int] = (1, 4)


@dataclass(frozen=True)
class Predicate:
    op: PredicateOp
    column: str
    value: Any
    columns: Tuple[str, ...] = ()  # ilike_any only


@dataclass
class PlaceQuery:
    predicates: List[Predicate] = field(default_factory=list)
    limit: int = 50

    # ──────────────────────────────────────────────────────────
    # Builders
    # ──────────────────────────────────────────────────────────

    @classmethod
    def published(cls, limit: int) -> "PlaceQuery":
        return cls(predicates=[Predicate("eq", "status", "published")], limit=max(1, int(limit)))

    def where(self, op: PredicateOp, column: str, value: Any) -> "PlaceQuery":
        self.predicates.append(Predicate(op, column, value))
        return self

    def where_text(self, term: str, columns: Sequence[str] = SEARCH_COLUMNS) -> "PlaceQuery":
        self.predicates.append(Predicate("ilike_any", "", term, tuple(columns)))
        return self

    @classmethod
    def for_search(cls, search_term: str, filters: MapFilters, limit: int = 50) -> "PlaceQuery":
        """Text match first, then facets in a fixed order. Everything ANDs together."""
        q = cls.published(limit)

        term = (search_term or "").strip()
        if term:
            q.where_text(term)

        if filters.counties:
            q.where("in", "county", list(filters.counties))
        if filters.cuisines:
            q.where("overlaps", "cuisines", list(filters.cuisines))
        if filters.tags:
            q.where("overlaps", "tags", list(filters.tags))

        lo, hi = filters.priceRange
        if (lo, hi) != FULL_PRICE_RANGE:
            q.where("gte", "price_level", lo).where("lte", "price_level", hi)

        if filters.rating and filters.rating > 0:
            q.where("gte", "rating", float(filters.rating))
        if filters.featured:
            q.where("eq", "is_featured", True)
        if filters.verified:
            q.where("eq", "is_verified", True)
        return q

    @classmethod
    def in_bounds(cls, bbox: BBox4, limit: int = 200) -> "PlaceQuery":
        return (
            cls.published(limit)
            .where("gte", "lng", bbox.minLng)
            .where("lte", "lng", bbox.maxLng)
            .where("gte", "lat", bbox.minLat)
            .where("lte", "lat", bbox.maxLat)
        )

    @classmethod
    def by_slug(cls, slug: str) -> "PlaceQuery":
        return cls.published(1).where("eq", "slug", slug)

    # ──────────────────────────────────────────────────────────
    # SQLite
    # ──────────────────────────────────────────────────────────

    def to_sql(self, table: str = "places") -> Tuple[str, List[Any], str]:
        """Returns (where_sql, params, order_sql)."""
        clauses: List[str] = []
        params: List[Any] = []

        for p in self.predicates:
            if p.op == "eq":
                clauses.append(f"{p.column} = ?")
                params.append(_sql_value(p.value))
            elif p.op == "in":
                marks = ",".join("?" for _ in p.value)
                clauses.append(f"{p.column} IN ({marks})")
                params.extend(p.value)
            elif p.op == "overlaps":
                marks = ",".join("?" for _ in p.value)
                clauses.append(
                    f"EXISTS (SELECT 1 FROM json_each({table}.{p.column}) j WHERE j.value IN ({marks}))"
                )
                params.extend(p.value)
            elif p.op == "gte":
                clauses.append(f"{p.column} >= ?")
                params.append(_sql_value(p.value))
            elif p.op == "lte":
                clauses.append(f"{p.column} <= ?")
                params.append(_sql_value(p.value))
            elif p.op == "ilike_any":
                pattern = f"%{_escape_like(str(p.value).lower())}%"
                ors = [f"LOWER(COALESCE({c}, '')) LIKE ? ESCAPE '\\'" for c in p.columns]
                clauses.append("(" + " OR ".join(ors) + ")")
                params.extend([pattern] * len(p.columns))
            else:
                raise ValueError(f"unsupported predicate op: {p.op}")

        where = " AND ".join(clauses) if clauses else "1=1"
        order = "is_featured DESC, rating IS NULL, rating DESC, name ASC"
        return where, params, order

    # ──────────────────────────────────────────────────────────
    # PostgREST
    # ──────────────────────────────────────────────────────────

    def to_postgrest(self, select: str = "*") -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = [("select", select)]

        for p in self.predicates:
            if p.op == "eq":
                params.append((p.column, f"eq.{_pgrst_scalar(p.value)}"))
            elif p.op == "in":
                params.append((p.column, f"in.({','.join(_pgrst_quote(str(v)) for v in p.value)})"))
            elif p.op == "overlaps":
                params.append((p.column, "ov.{" + ",".join(_pgrst_quote(str(v)) for v in p.value) + "}"))
            elif p.op == "gte":
                params.append((p.column, f"gte.{_pgrst_scalar(p.value)}"))
            elif p.op == "lte":
                params.append((p.column, f"lte.{_pgrst_scalar(p.value)}"))
            elif p.op == "ilike_any":
                pattern = _pgrst_quote(f"*{_escape_like(str(p.value).replace('*', ''))}*")
                ors = ",".join(f"{c}.ilike.{pattern}" for c in p.columns)
                params.append(("or", f"({ors})"))
            else:
                raise ValueError(f"unsupported predicate op: {p.op}")

        params.append(("order", "is_featured.desc,rating.desc.nullslast,name.asc"))
        params.append(("limit", str(self.limit)))
        return params


def _sql_value(v: Any) -> Any:
    if isinstance(v, bool):
        return 1 if v else 0
    return v


def _escape_like(s: str) -> str:
    return s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _pgrst_quote(s: str) -> str:
    # PostgREST: double-quoted values may contain , . : ( ); escape \ and "
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _pgrst_scalar(v: Any) -> str:
    # eq/gte/lte take the rest of the value literally; quoting is only parsed inside in.() / or=()
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)
