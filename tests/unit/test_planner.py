"""Tests for page planning and SQL rendering."""

from datetime import datetime
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from table_fetch.common.exceptions import ConfigurationError
from table_fetch.dialects import get_dialect
from table_fetch.models import MaxValueColumn, SqlType
from table_fetch.planner import (
    PageBounds,
    QueryPlanner,
    compute_page_plan,
    format_watermark_value,
    is_newer_watermark,
)

# ---------------------------------------------------------------------------
# compute_page_plan
# ---------------------------------------------------------------------------


class TestComputePagePlan:
    def test_zero_rows_produces_no_pages(self):
        plan = compute_page_plan(0, 10)
        assert plan.page_count == 0
        assert plan.pages == []

    def test_exact_multiple(self):
        plan = compute_page_plan(6, 2)
        assert plan.page_count == 3
        assert [p.offset for p in plan.pages] == [0, 2, 4]
        assert all(p.limit == 2 for p in plan.pages)

    def test_last_page_holds_remainder(self):
        plan = compute_page_plan(7, 2)
        assert plan.page_count == 4
        assert plan.pages[-1] == PageBounds(offset=6, limit=1)

    def test_row_count_beyond_32_bits(self):
        total_rows = 2**31 - 1 + 100
        plan = compute_page_plan(total_rows, 1000000)
        assert plan.page_count == total_rows // 1000000 + 1
        assert plan.pages[0] == PageBounds(offset=0, limit=1000000)
        assert plan.pages[-1].offset == (plan.page_count - 1) * 1000000
        assert plan.pages[-1].limit == total_rows - plan.pages[-1].offset

    @pytest.mark.parametrize("page_size", [0, -1, "10", None, True])
    def test_rejects_invalid_page_size(self, page_size):
        with pytest.raises(ConfigurationError):
            compute_page_plan(10, page_size)

    @settings(max_examples=200)
    @given(
        total_rows=st.integers(min_value=0, max_value=5000),
        page_size=st.integers(min_value=1, max_value=700),
    )
    def test_pages_cover_every_row_once(self, total_rows, page_size):
        plan = compute_page_plan(total_rows, page_size)
        assert plan.page_count == -(-total_rows // page_size)
        assert sum(p.limit for p in plan.pages) == total_rows
        expected_offset = 0
        for page in plan.pages:
            assert page.offset == expected_offset
            assert 0 < page.limit <= page_size
            expected_offset += page.limit


# ---------------------------------------------------------------------------
# QueryPlanner
# ---------------------------------------------------------------------------


@pytest.fixture
def planner() -> QueryPlanner:
    return QueryPlanner(get_dialect("Derby"))


ID = MaxValueColumn(name="ID", sql_type=SqlType.NUMERIC)
BUCKET = MaxValueColumn(name="BUCKET", sql_type=SqlType.NUMERIC)
NAME = MaxValueColumn(name="name", sql_type=SqlType.TEXT)
CREATED = MaxValueColumn(name="created_on", sql_type=SqlType.TEMPORAL)


class TestBuildPredicate:
    def test_no_watermarks_means_no_predicate(self, planner):
        assert planner.build_predicate([ID, BUCKET], {}) is None

    def test_columns_without_watermark_are_skipped(self, planner):
        assert planner.build_predicate([ID, BUCKET], {"BUCKET": "3"}) == "BUCKET > 3"

    def test_comparisons_are_anded_in_configured_order(self, planner):
        predicate = planner.build_predicate([ID, BUCKET], {"ID": "1", "BUCKET": "0"})
        assert predicate == "ID > 1 AND BUCKET > 0"

    def test_text_and_temporal_values_are_quoted(self, planner):
        predicate = planner.build_predicate(
            [NAME, CREATED],
            {"name": "O'Brien", "created_on": "2012-01-01 03:23:34.234000"},
        )
        assert predicate == (
            "name > 'O''Brien' AND created_on > '2012-01-01 03:23:34.234000'"
        )


class TestRenderPages:
    def test_count_query_collects_maxima(self, planner):
        query = planner.build_count_query("T", [ID, BUCKET], "ID > 2")
        assert query == "SELECT COUNT(*), MAX(ID), MAX(BUCKET) FROM T WHERE ID > 2"

    def test_count_query_without_columns(self, planner):
        assert planner.build_count_query("T", [], None) == "SELECT COUNT(*) FROM T"

    def test_first_page_has_no_offset(self, planner):
        queries = planner.render_pages("T", ["ID"], None, compute_page_plan(3, 10000))
        assert queries == ["SELECT * FROM T ORDER BY ID FETCH NEXT 10000 ROWS ONLY"]

    def test_following_pages_offset_by_page_size(self, planner):
        queries = planner.render_pages("T", ["ID"], "ID > 2", compute_page_plan(3, 2))
        assert queries == [
            "SELECT * FROM T WHERE ID > 2 ORDER BY ID FETCH NEXT 2 ROWS ONLY",
            "SELECT * FROM T WHERE ID > 2 ORDER BY ID OFFSET 2 ROWS FETCH NEXT 2 ROWS ONLY",
        ]

    def test_no_order_by_without_max_value_columns(self, planner):
        queries = planner.render_pages("T", [], None, compute_page_plan(1, 5))
        assert queries == ["SELECT * FROM T FETCH NEXT 5 ROWS ONLY"]

    def test_columns_to_return(self, planner):
        queries = planner.render_pages(
            "T", ["ID"], None, compute_page_plan(1, 5), ["ID", "NAME"]
        )
        assert queries == ["SELECT ID, NAME FROM T ORDER BY ID FETCH NEXT 5 ROWS ONLY"]


class TestWatermarkValues:
    def test_format_values(self):
        assert format_watermark_value(None) is None
        assert format_watermark_value(5) == "5"
        assert format_watermark_value(Decimal("1.50")) == "1.50"
        assert (
            format_watermark_value(datetime(2012, 1, 1, 3, 23, 34, 234000))
            == "2012-01-01 03:23:34.234000"
        )

    def test_numeric_comparison_is_not_lexicographic(self):
        assert is_newer_watermark("10", "9", SqlType.NUMERIC)
        assert not is_newer_watermark("9", "10", SqlType.NUMERIC)

    def test_temporal_comparison(self):
        assert is_newer_watermark(
            "2012-01-02 00:00:00", "2012-01-01 23:59:59.999000", SqlType.TEMPORAL
        )

    def test_next_watermarks_never_decrease(self, planner):
        updates = planner.next_watermarks(
            [ID, BUCKET], {"ID": "5", "BUCKET": "9"}, [7, 3]
        )
        assert updates == {"ID": "7"}

    def test_next_watermarks_skip_null_maxima(self, planner):
        assert planner.next_watermarks([ID], {}, [None]) == {}
