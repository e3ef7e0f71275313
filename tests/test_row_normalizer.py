"""
tests/test_row_normalizer.py

Key/timestamp resolution and skip counting.
"""

from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest

from app.domain.scan_import import EntityKey, EntityKind
from app.validators.row_normalizer import RowNormalizer, parse_timestamp


class TestParseTimestamp:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("1700000000000", 1_700_000_000),
            ("1700000000", 1_700_000_000),
            ("14.11.2023 22:13:20", 1_700_000_000),
            ("14.11.2023 22:13", 1_699_999_980),
            ("2023-11-14T22:13:20Z", 1_700_000_000),
        ],
    )
    def test_accepted_shapes(self, raw: str, expected: int) -> None:
        assert parse_timestamp(raw) == expected

    def test_dotted_format_uses_given_zone(self) -> None:
        berlin = ZoneInfo("Europe/Berlin")
        assert parse_timestamp("14.11.2023 23:13:20", berlin) == 1_700_000_000

    @pytest.mark.parametrize("raw", [None, "", "   ", "not a date", "now", "today", "Today 12:00"])
    def test_unparseable_is_none(self, raw: object) -> None:
        assert parse_timestamp(raw) is None


class TestRowNormalizer:
    @pytest.fixture()
    def normalizer(self) -> RowNormalizer:
        return RowNormalizer()

    def test_groups_valid_rows_by_entity(self, normalizer: RowNormalizer, player_row) -> None:
        rows = [player_row(ts=1_700_000_000), player_row(ts=1_700_000_100), player_row(pid="p2")]
        batch = normalizer.normalize(kind=EntityKind.PLAYERS, rows=rows)

        key = EntityKey(kind="players", entity_id="p1", server="EU5")
        assert len(batch.rows) == 3
        assert [row.timestamp_sec for row in batch.by_entity[key]] == [1_700_000_000, 1_700_000_100]
        assert batch.skips.total == 0
        assert batch.rows[0].name == "Hero"

    def test_server_is_upper_cased(self, normalizer: RowNormalizer, player_row) -> None:
        batch = normalizer.normalize(kind=EntityKind.PLAYERS, rows=[player_row(server="eu5")])
        assert batch.rows[0].key.server == "EU5"

    def test_missing_server_counts_only_missing_server(self, normalizer: RowNormalizer, player_row) -> None:
        batch = normalizer.normalize(kind=EntityKind.PLAYERS, rows=[player_row(Server="")])

        assert batch.rows == []
        assert batch.skips.missing_server == 1
        assert batch.skips.missing_identifier == 0
        assert batch.skips.total == 1

    def test_missing_identifier_wins_over_other_reasons(self, normalizer: RowNormalizer, player_row) -> None:
        batch = normalizer.normalize(
            kind=EntityKind.PLAYERS,
            rows=[player_row(ID="", Server="", Timestamp="garbage")],
        )
        assert batch.skips.missing_identifier == 1
        assert batch.skips.total == 1

    def test_guild_rows_count_missing_guild_identifier(self, normalizer: RowNormalizer, guild_row) -> None:
        batch = normalizer.normalize(kind=EntityKind.GUILDS, rows=[guild_row(gid="")])
        assert batch.skips.missing_guild_identifier == 1
        assert batch.skips.missing_identifier == 0

    def test_bad_timestamp_is_counted(self, normalizer: RowNormalizer, player_row) -> None:
        batch = normalizer.normalize(kind=EntityKind.PLAYERS, rows=[player_row(Timestamp="soon")])
        assert batch.skips.bad_timestamp == 1

    def test_fully_blank_rows_are_ignored(self, normalizer: RowNormalizer) -> None:
        batch = normalizer.normalize(kind=EntityKind.PLAYERS, rows=[{"ID": "", "Server": " "}])
        assert batch.rows == []
        assert batch.skips.total == 0
