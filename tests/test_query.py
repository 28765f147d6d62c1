from munchies.core.contracts import BBox4, MapFilters
from munchies.core.query import PlaceQuery


def _params(q: PlaceQuery) -> dict:
    out: dict = {}
    for k, v in q.to_postgrest():
        out.setdefault(k, []).append(v)
    return out


class TestPostgrestRendering:
    def test_full_filter_set(self):
        filters = MapFilters(
            counties=["Wayne"],
            cuisines=["Pizza", "Italian"],
            tags=["Late Night"],
            priceRange=(2, 3),
            rating=4,
            featured=True,
            verified=True,
        )
        p = _params(PlaceQuery.for_search("pizza", filters, limit=25))

        assert p["status"] == ["eq.published"]
        assert p["or"] == [
            '(name.ilike."*pizza*",city.ilike."*pizza*",county.ilike."*pizza*",address.ilike."*pizza*")'
        ]
        assert p["county"] == ['in.("Wayne")']
        assert p["cuisines"] == ['ov.{"Pizza","Italian"}']
        assert p["tags"] == ['ov.{"Late Night"}']
        assert p["price_level"] == ["gte.2", "lte.3"]
        assert p["rating"] == ["gte.4.0"]
        assert p["is_featured"] == ["eq.true"]
        assert p["is_verified"] == ["eq.true"]
        assert p["order"] == ["is_featured.desc,rating.desc.nullslast,name.asc"]
        assert p["limit"] == ["25"]

    def test_default_filters_add_no_predicates(self):
        p = _params(PlaceQuery.for_search("", MapFilters()))
        assert set(p) == {"select", "status", "order", "limit"}

    def test_search_text_cannot_break_out_of_the_filter(self):
        p = _params(PlaceQuery.for_search('a,b).or(x"', MapFilters()))
        (rendered,) = p["or"]
        # the whole term stays inside one quoted literal per column
        assert rendered.count('"*a,b).or(x\\"*"') == 4

    def test_by_slug(self):
        p = _params(PlaceQuery.by_slug("lov-a-burger"))
        assert p["slug"] == ["eq.lov-a-burger"]
        assert p["limit"] == ["1"]


class TestSqlRendering:
    def test_bounds(self):
        where, params, order = PlaceQuery.in_bounds(BBox4(minLng=-85, minLat=41, maxLng=-81, maxLat=45)).to_sql()
        assert where == "status = ? AND lng >= ? AND lng <= ? AND lat >= ? AND lat <= ?"
        assert params == ["published", -85, -81, 41, 45]
        assert order.startswith("is_featured DESC")

    def test_overlap_and_text(self):
        q = PlaceQuery.for_search("50%", MapFilters(cuisines=["Tacos"]))
        where, params, _ = q.to_sql()
        assert "json_each(places.cuisines)" in where
        assert "LIKE ? ESCAPE" in where
        # % is escaped so it matches literally
        assert params[1] == "%50\\%%"
        assert params[-1] == "Tacos"

    def test_booleans_bind_as_ints(self):
        _, params, _ = PlaceQuery.for_search("", MapFilters(featured=True)).to_sql()
        assert params == ["published", 1]


def test_plain_operator_values_are_not_quoted():
    p = _params(PlaceQuery.by_slug('odd,slug"(x)'))
    assert p["status"] == ["eq.published"]
    assert p["slug"] == ['eq.odd,slug"(x)']
