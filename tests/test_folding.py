"""
tests/test_folding.py

Column fold rules and the period aggregator.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from aggregation.folding import FOLD_LAST, FOLD_MAX, FoldClassifier, FoldRow, fold_columns
from aggregation.period_aggregator import PERIOD_MONTHLY, PERIOD_WEEKLY, PeriodAggregator
from app.domain.scan_import import EntityKey, ParsedScanRow

T1 = 1_700_000_000
FIXED_NOW = datetime(2023, 11, 20, tzinfo=timezone.utc)
ENTITY = EntityKey(kind="players", entity_id="p1", server="EU5")


def _parsed(ts: int, **values: str) -> ParsedScanRow:
    return ParsedScanRow(
        key=ENTITY,
        timestamp_sec=ts,
        timestamp_raw=str(ts),
        name=values.get("Name") or None,
        raw=values,
    )


class TestFoldClassifier:
    def test_default_max_columns(self, classifier: FoldClassifier) -> None:
        assert classifier.rule_for("Strength") == FOLD_MAX
        assert classifier.rule_for("base_attribute") == FOLD_LAST
        assert classifier.rule_for("Attribute") == FOLD_MAX
        assert classifier.rule_for("Equipment Score") == FOLD_MAX
        assert classifier.rule_for("Name") == FOLD_LAST

    def test_configurable_predicate(self) -> None:
        custom = FoldClassifier(max_keys=["Honor"], max_substrings=["gold"])
        assert custom.rule_for("honor") == FOLD_MAX
        assert custom.rule_for("Total Gold") == FOLD_MAX
        assert custom.rule_for("Strength") == FOLD_LAST


class TestFoldColumns:
    def test_max_and_last_wins(self, classifier: FoldClassifier) -> None:
        rows = [
            FoldRow(T1, {"Strength": "10", "Name": "A"}),
            FoldRow(T1 + 100, {"Strength": "25", "Name": ""}),
            FoldRow(T1 + 200, {"Strength": "7", "Name": "B"}),
        ]
        folded = fold_columns(rows, ["Strength", "Name"], classifier)
        assert folded == {"Strength": "25", "Name": "B"}

    def test_input_order_does_not_matter(self, classifier: FoldClassifier) -> None:
        rows = [
            FoldRow(T1 + 200, {"Strength": "7", "Name": "B"}),
            FoldRow(T1, {"Strength": "10", "Name": "A"}),
        ]
        assert fold_columns(rows, ["Strength", "Name"], classifier) == {"Strength": "10", "Name": "B"}

    def test_max_ties_keep_first_raw_value(self, classifier: FoldClassifier) -> None:
        rows = [FoldRow(T1, {"Luck": "25"}), FoldRow(T1 + 1, {"Luck": "25.0"})]
        assert fold_columns(rows, ["Luck"], classifier) == {"Luck": "25"}

    def test_missing_or_unparseable_columns_fold_to_empty(self, classifier: FoldClassifier) -> None:
        rows = [FoldRow(T1, {"Strength": "n/a"})]
        assert fold_columns(rows, ["Strength", "Guild"], classifier) == {"Strength": "", "Guild": ""}


class TestPeriodAggregator:
    @pytest.fixture()
    def aggregator(self, classifier: FoldClassifier) -> PeriodAggregator:
        return PeriodAggregator(classifier)

    def test_buckets_by_week_and_month(self, aggregator: PeriodAggregator) -> None:
        rows = [_parsed(T1, Strength="50", Name="Hero"), _parsed(T1 + 50_000, Strength="80", Name="Hero")]
        documents = aggregator.build(ENTITY, rows, ["Strength", "Name"], now=FIXED_NOW)

        by_period = {document.period: document for document in documents}
        assert set(by_period) == {PERIOD_WEEKLY, PERIOD_MONTHLY}
        weekly = by_period[PERIOD_WEEKLY]
        assert weekly.path == "players/EU5__p1/history_weekly/2023-W46"
        assert weekly.data["values"] == {"Strength": "80", "Name": "Hero"}
        assert weekly.data["period_start_sec"] == 1_699_833_600
        assert weekly.data["period_end_sec"] == 1_700_438_399
        assert weekly.data["last_timestamp_sec"] == T1 + 50_000
        assert by_period[PERIOD_MONTHLY].path == "players/EU5__p1/history_monthly/2023-11"

    def test_rows_in_two_weeks_produce_two_weekly_buckets(self, aggregator: PeriodAggregator) -> None:
        rows = [_parsed(T1, Strength="1"), _parsed(T1 + 7 * 86400, Strength="2")]
        documents = aggregator.build(ENTITY, rows, ["Strength"], now=FIXED_NOW)

        weekly_ids = sorted(doc.period_id for doc in documents if doc.period == PERIOD_WEEKLY)
        assert weekly_ids == ["2023-W46", "2023-W47"]

    def test_refeeding_same_rows_gives_same_output(self, aggregator: PeriodAggregator) -> None:
        rows = [_parsed(T1, Strength="50"), _parsed(T1 + 10, Strength="80")]
        first = aggregator.build(ENTITY, rows, ["Strength"], now=FIXED_NOW)
        second = aggregator.build(ENTITY, list(reversed(rows)), ["Strength"], now=FIXED_NOW)
        assert first == second

    def test_seed_prevents_regression(self, aggregator: PeriodAggregator) -> None:
        seed = {
            "last_timestamp_sec": T1 + 500,
            "last_timestamp_raw": str(T1 + 500),
            "name": "Later",
            "name_timestamp_sec": T1 + 500,
            "values": {"Strength": "80", "Name": "Later", "Luck": "9"},
            "value_timestamps": {"Strength": T1 + 500, "Name": T1 + 500, "Luck": T1 + 300},
        }
        bucket = aggregator.plan(ENTITY, [_parsed(T1, Strength="50", Name="Early")])[0]
        document = aggregator.fold_bucket(bucket, ["Strength", "Name"], seed=seed, now=FIXED_NOW)

        assert document.data["values"] == {"Strength": "80", "Name": "Later", "Luck": "9"}
        assert document.data["value_timestamps"] == {"Strength": T1 + 500, "Name": T1 + 500, "Luck": T1 + 300}
        assert document.data["last_timestamp_sec"] == T1 + 500
        assert document.data["name"] == "Later"

    def test_late_scan_between_stored_scans_wins_last_value(self, aggregator: PeriodAggregator) -> None:
        first = aggregator.build(
            ENTITY,
            [_parsed(T1, Title="A"), _parsed(T1 + 200, Title="")],
            ["Title"],
            now=FIXED_NOW,
        )
        stored = next(doc.data for doc in first if doc.period == PERIOD_WEEKLY)
        assert stored["values"]["Title"] == "A"
        assert stored["value_timestamps"] == {"Title": T1}

        bucket = aggregator.plan(ENTITY, [_parsed(T1 + 100, Title="B")])[0]
        document = aggregator.fold_bucket(bucket, ["Title"], seed=stored, now=FIXED_NOW)

        assert document.data["values"]["Title"] == "B"
        assert document.data["value_timestamps"]["Title"] == T1 + 100
        assert document.data["last_timestamp_sec"] == T1 + 200

    def test_seed_without_sources_yields_to_any_scan(self, aggregator: PeriodAggregator) -> None:
        seed = {
            "last_timestamp_sec": T1 + 500,
            "name": "Stored",
            "values": {"Strength": "80", "Name": "Stored", "Guild": "Old"},
        }
        bucket = aggregator.plan(ENTITY, [_parsed(T1, Strength="50", Name="Early")])[0]
        document = aggregator.fold_bucket(bucket, ["Strength", "Name"], seed=seed, now=FIXED_NOW)

        assert document.data["values"] == {"Strength": "80", "Name": "Early", "Guild": "Old"}
        assert document.data["name"] == "Early"

    def test_plan_keeps_only_buckets_with_fresh_rows(self, aggregator: PeriodAggregator) -> None:
        rows = [_parsed(T1), _parsed(T1 + 7 * 86400)]
        buckets = aggregator.plan(ENTITY, rows, fresh_timestamps={T1 + 7 * 86400})

        assert {bucket.period_id for bucket in buckets} == {"2023-W47", "2023-11"}
