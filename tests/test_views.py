"""End-to-end tests for the market, category explorer and opportunities views."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import unittest
from opportunity.composite import build_candidates
from opportunity.distribution import compute_distribution
from opportunity.histograms import rating_histogram, users_bucket, users_histogram
from opportunity.models import CategoryLink, CategoryRecord, ExtensionRecord, FilterCriteria, Snapshot
from opportunity.params import CategoryTableParams, MarketParams, OpportunitiesParams
from opportunity.views import (
    build_category_explorer,
    build_market_view,
    build_opportunities_view,
    describe_scoring_model,
    prepare,
)


def build_snapshot(count=150):
    """Deterministic catalogue: `count` extensions spread over four categories."""
    extensions = []
    for i in range(1, count + 1):
        extensions.append(
            ExtensionRecord(
                id=i,
                name=f"Extension {i}",
                url=f"https://example.test/ext/{i}",
                users=(i * 7919) % 100000,
                rating=None if i % 25 == 0 else round(1.0 + (i * 37 % 41) / 10, 2),
                rating_votes=(i * 131) % 900,
                languages="en, de" if i % 3 else "fr",
                updated_at="2024-05-01",
            )
        )
    categories = [
        CategoryRecord(1, "Productivity"),
        CategoryRecord(2, "Privacy"),
        CategoryRecord(3, "Shopping"),
        CategoryRecord(4, "Unused"),
    ]
    links = []
    for ext in extensions:
        links.append(CategoryLink(1 + ext.id % 3, ext.id))
        if ext.id % 5 == 0:
            links.append(CategoryLink(1 + (ext.id + 1) % 3, ext.id))
    return Snapshot.build(extensions, categories, links)


class TestHistograms(unittest.TestCase):
    def test_users_buckets(self):
        self.assertEqual(users_bucket(0), 0)
        self.assertEqual(users_bucket(7), 1)
        self.assertEqual(users_bucket(250), 3)
        self.assertEqual(users_bucket(1000), 4)

        buckets = users_histogram([0, 7, 250, 999])
        self.assertEqual(
            [(b.bucket_start, b.bucket_end, b.item_count) for b in buckets],
            [(0, 0, 1), (1, 9, 1), (100, 999, 2)],
        )

    def test_rating_buckets(self):
        buckets = rating_histogram([4.1, 4.2, 4.3, 5.0, None, 0.0])
        self.assertEqual(
            [(b.bucket_start, b.bucket_end, b.item_count) for b in buckets],
            [(0.0, 0.25, 1), (4.0, 4.25, 2), (4.25, 4.5, 1), (5.0, 5.0, 1)],
        )


class TestExclusionBeforeAggregation(unittest.TestCase):
    """The excluded top slice must not reach the prior, aggregates or ceilings."""

    def setUp(self):
        self.snapshot = Snapshot.build(
            [
                ExtensionRecord(id=1, name="Giant", users=1_000_000, rating=5.0, rating_votes=1_000_000),
                ExtensionRecord(id=2, name="Small", users=500, rating=2.0, rating_votes=10),
                ExtensionRecord(id=3, name="Smaller", users=400, rating=3.0, rating_votes=10),
            ],
            [CategoryRecord(1, "Tools")],
            [CategoryLink(1, 1), CategoryLink(1, 2), CategoryLink(1, 3)],
        )

    def test_outlier_removed_from_every_stage(self):
        state = prepare(self.snapshot, FilterCriteria(exclude_top_pct=33))
        self.assertEqual([e.id for e in state.candidates], [2, 3])
        self.assertAlmostEqual(state.global_avg_rating, 2.5)

        stats = state.categories[1]
        self.assertEqual(stats.member_count, 2)
        self.assertEqual(stats.total_users, 900)
        self.assertAlmostEqual(stats.avg_rating, 2.5)

        rows = build_candidates(self.snapshot, state.candidates, state.categories)
        distribution = compute_distribution(rows, list(state.categories.values()))
        self.assertAlmostEqual(distribution.users_ceiling, 495.0)
        self.assertAlmostEqual(distribution.votes_ceiling, 10.0)

    def test_outlier_dominates_without_exclusion(self):
        state = prepare(self.snapshot, FilterCriteria())
        self.assertGreater(state.global_avg_rating, 4.99)
        self.assertEqual(state.categories[1].member_count, 3)

    def test_opportunities_never_include_excluded(self):
        view = build_opportunities_view(self.snapshot, FilterCriteria(exclude_top_pct=33))
        self.assertEqual(sorted(p.extension_id for p in view.bubble_points), [2, 3])


class TestMarketView(unittest.TestCase):
    def setUp(self):
        self.snapshot = build_snapshot()

    def test_populated_categories_only(self):
        market = build_market_view(self.snapshot, FilterCriteria())
        self.assertEqual(sorted(c.category_id for c in market), [1, 2, 3])

    def test_default_order_total_users_desc(self):
        market = build_market_view(self.snapshot, FilterCriteria())
        totals = [c.total_users for c in market]
        self.assertEqual(totals, sorted(totals, reverse=True))

    def test_underserved_index_bounded(self):
        for category in build_market_view(self.snapshot, FilterCriteria(exclude_top_pct=10)):
            self.assertTrue(0.0 <= category.underserved_index <= 1.0)
            self.assertTrue(0.0 <= category.avg_rating <= 5.0)

    def test_sort_by_underserved(self):
        market = build_market_view(self.snapshot, FilterCriteria(), MarketParams("underserved_index", "asc"))
        values = [c.underserved_index for c in market]
        self.assertEqual(values, sorted(values))

    def test_empty_population(self):
        self.assertEqual(build_market_view(self.snapshot, FilterCriteria(min_users=10**9)), [])


class TestCategoryExplorer(unittest.TestCase):
    def setUp(self):
        self.snapshot = build_snapshot()

    def test_unknown_category_is_none(self):
        self.assertIsNone(build_category_explorer(self.snapshot, 999, FilterCriteria()))

    def test_existing_category_without_members_is_empty(self):
        explorer = build_category_explorer(self.snapshot, 4, FilterCriteria())
        self.assertIsNotNone(explorer)
        self.assertEqual(explorer.category.extension_count, 0)
        self.assertEqual(explorer.scatter_points, ())
        self.assertEqual(explorer.table.total, 0)

    def test_sections(self):
        explorer = build_category_explorer(
            self.snapshot, 2, FilterCriteria(), CategoryTableParams(page=1, page_size=10, sort_by="rating_gap")
        )
        count = explorer.category.extension_count
        self.assertGreater(count, 0)
        self.assertEqual(len(explorer.scatter_points), count)
        self.assertEqual(sum(b.item_count for b in explorer.users_histogram), count)
        self.assertEqual(sum(b.item_count for b in explorer.rating_histogram), count)
        self.assertEqual(explorer.table.total, count)
        self.assertEqual(len(explorer.table.rows), min(10, count))

        gaps = [row.rating_gap for row in explorer.table.rows]
        self.assertEqual(gaps, sorted(gaps, reverse=True))
        for point in explorer.scatter_points:
            self.assertGreaterEqual(point.rating_gap, 0.0)

        users = [p.users for p in explorer.scatter_points]
        self.assertEqual(users, sorted(users, reverse=True))

    def test_parallel_matches_sequential(self):
        criteria = FilterCriteria(min_users=100, exclude_top_pct=5)
        table = CategoryTableParams(page=2, page_size=10, sort_by="rating", sort_dir="asc")
        sequential = build_category_explorer(self.snapshot, 1, criteria, table)
        parallel = build_category_explorer(self.snapshot, 1, criteria, table, parallel=True)
        self.assertEqual(sequential.to_dict(), parallel.to_dict())


class TestOpportunitiesView(unittest.TestCase):
    def setUp(self):
        self.snapshot = build_snapshot()

    def test_table_page_is_slice_of_bubble_set(self):
        view = build_opportunities_view(self.snapshot, FilterCriteria(), OpportunitiesParams(page=2, limit=100))
        self.assertEqual(len(view.bubble_points), 100)
        self.assertEqual(view.table.total, 100)
        self.assertEqual(view.table.page_size, 20)
        self.assertEqual(view.table.rows, view.bubble_points[20:40])

    def test_default_order_is_score_desc(self):
        view = build_opportunities_view(self.snapshot, FilterCriteria())
        scores = [p.score for p in view.bubble_points]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_candidates_respect_filters(self):
        criteria = FilterCriteria(min_users=1000, max_users=80000, rating_min=2.0, rating_max=4.5, language_substring="DE")
        view = build_opportunities_view(self.snapshot, criteria, OpportunitiesParams(limit=500))
        self.assertGreater(len(view.bubble_points), 0)
        for point in view.bubble_points:
            self.assertTrue(1000 <= point.users <= 80000)
            self.assertIsNotNone(point.rating)
            self.assertTrue(2.0 <= point.rating <= 4.5)
            self.assertGreaterEqual(point.rating_gap, 0.0)
            self.assertTrue(0.0 <= point.score <= 100.0)
            if point.rating >= point.category_avg_rating:
                self.assertEqual(point.gap_effective, 0.0)

    def test_deterministic(self):
        criteria = FilterCriteria(exclude_top_pct=3)
        params = OpportunitiesParams(page=1, limit=60, sort_by="competition_count", sort_dir="asc")
        first = build_opportunities_view(self.snapshot, criteria, params).to_dict()
        second = build_opportunities_view(self.snapshot, criteria, params).to_dict()
        self.assertEqual(first, second)

    def test_empty_population(self):
        view = build_opportunities_view(self.snapshot, FilterCriteria(name_substring="no such extension"))
        self.assertEqual(view.bubble_points, ())
        self.assertEqual(view.table.total, 0)
        self.assertEqual(view.table.rows, ())


class TestScoringModel(unittest.TestCase):
    def test_description(self):
        model = describe_scoring_model()
        self.assertIn("0.45 * demand_norm", model["formula"])
        self.assertEqual(model["ceilings"]["gap_cap"], "90%")
        self.assertEqual(model["bayes_prior_weight"], 5000.0)


if __name__ == "__main__":
    unittest.main()
