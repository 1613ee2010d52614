"""Tests for BetsAPI payload validation and goal line extraction."""

import pytest

from goalwatch.etl.payloads import (
    InplayEventPayload,
    OddsSummaryPayload,
    PrematchOddsPayload,
    extract_historical_line,
    extract_prematch_line,
    extract_summary_line,
)
from goalwatch.tracking.observations import normalize_line, parse_odds, parse_score


class TestNormalizeLine:
    """Goal line handicap parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2.5", 2.5),
            ("+2.5", 2.5),
            ("2.5,3.0", 2.5),
            (3, 3.0),
            (2.75, 2.75),
        ],
    )
    def test_valid(self, raw, expected):
        assert normalize_line(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "nan", "inf", True, "+"])
    def test_invalid(self, raw):
        assert normalize_line(raw) is None


class TestParsers:
    """Score and odds parsing."""

    def test_parse_score(self):
        assert parse_score("2-1") == (2, 1)
        assert parse_score(" 0 - 3 ") == (0, 3)

    @pytest.mark.parametrize("raw", [None, "", "2", "2-1-0", "a-b", "-1-2"])
    def test_parse_score_invalid(self, raw):
        assert parse_score(raw) is None

    def test_parse_odds(self):
        assert parse_odds("1.85") == 1.85
        assert parse_odds("N/A") == 0.0
        assert parse_odds(None) == 0.0


class TestInplayEvent:
    """In-play event validation."""

    def test_numeric_ids_are_coerced(self):
        event = InplayEventPayload.model_validate(
            {"id": 123, "league": {"id": 23114, "name": "Esoccer GT Leagues"}, "bet365_id": 987, "ss": "1-0"}
        )
        assert event.id == "123"
        assert event.bet365_id == "987"
        assert event.league_id == 23114

    def test_unknown_fields_ignored(self):
        event = InplayEventPayload.model_validate({"id": "5", "time_status": "1", "extra": {"x": 1}})
        assert event.id == "5"
        assert event.league_id is None

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError):
            InplayEventPayload.model_validate({"id": "  "})


class TestSummaryExtraction:
    """Primary source: odds summary market 1_3."""

    def test_end_snapshot_preferred(self):
        payload = OddsSummaryPayload.model_validate(
            {
                "Bet365": {
                    "odds": {
                        "start": {"1_3": {"handicap": "3.0", "over_od": "1.90", "under_od": "1.90"}},
                        "end": {"1_3": {"handicap": "2.5", "over_od": "1.85", "under_od": "1.95", "ss": "1-1"}},
                    }
                }
            }
        )
        quote = extract_summary_line(payload)
        assert quote.kind == "odds_summary"
        assert quote.line == 2.5
        assert quote.over_odds == "1.85"
        assert quote.score == "1-1"

    def test_falls_back_to_kickoff_then_start(self):
        payload = OddsSummaryPayload.model_validate(
            {"Bet365": {"odds": {"start": {"1_3": {"handicap": "3.5", "over_od": "2.0"}}}}}
        )
        quote = extract_summary_line(payload)
        assert quote.line == 3.5
        assert quote.under_odds == "N/A"

    def test_non_numeric_handicap_fails_closed(self):
        payload = OddsSummaryPayload.model_validate(
            {"Bet365": {"odds": {"end": {"1_3": {"handicap": "TBD", "over_od": "1.9"}}}}}
        )
        assert extract_summary_line(payload) is None

    def test_missing_market(self):
        payload = OddsSummaryPayload.model_validate(
            {"Bet365": {"odds": {"end": {"1_1": {"home_od": "2.0"}}}}}
        )
        assert extract_summary_line(payload) is None
        assert payload.available_markets() == ["1_1"]

    def test_missing_bookmaker(self):
        payload = OddsSummaryPayload.model_validate({"WilliamHill": {}})
        assert extract_summary_line(payload) is None
        assert payload.available_markets() == []


class TestPrematchExtraction:
    """Fallback source: Bet365 prematch markets."""

    def test_asian_total_market(self):
        payload = PrematchOddsPayload.model_validate(
            {
                "odds": {
                    "1": {"market_name": "Fulltime Result", "odds": [{"handicap": "", "over_od": "2.0"}]},
                    "2": {
                        "market_name": "Asian Total Goals",
                        "odds": [
                            {"handicap": "x", "over_od": "1.9"},
                            {"handicap": "2.5,3.0", "over_od": "1.80", "under_od": "2.00"},
                        ],
                    },
                }
            }
        )
        quote = extract_prematch_line(payload)
        assert quote.kind == "prematch"
        assert quote.line == 2.5
        assert quote.over_odds == "1.80"

    def test_entry_without_over_price_skipped(self):
        payload = PrematchOddsPayload.model_validate(
            {"odds": {"1": {"market_name": "Over/Under", "odds": [{"handicap": "2.5"}]}}}
        )
        assert extract_prematch_line(payload) is None

    def test_malformed_market_skipped(self):
        payload = PrematchOddsPayload.model_validate({"odds": {"1": "garbage"}})
        assert extract_prematch_line(payload) is None


class TestHistoricalExtraction:
    """Backfill summary of a finished match."""

    def test_start_line_with_touch_at_end(self):
        payload = OddsSummaryPayload.model_validate(
            {
                "Bet365": {
                    "odds": {
                        "start": {"1_3": {"handicap": "3.0", "over_od": "1.9"}},
                        "end": {"1_3": {"handicap": "2.5", "over_od": "1.7"}},
                    }
                }
            }
        )
        historical = extract_historical_line(payload, 2.5)
        assert historical.line == 3.0
        assert historical.touched_target

    def test_kickoff_used_when_start_missing(self):
        payload = OddsSummaryPayload.model_validate(
            {"Bet365": {"odds": {"kickoff": {"1_3": {"handicap": "4.0", "over_od": "1.9"}}}}}
        )
        historical = extract_historical_line(payload, 2.5)
        assert historical.line == 4.0
        assert not historical.touched_target

    def test_end_only_is_not_enough(self):
        payload = OddsSummaryPayload.model_validate(
            {"Bet365": {"odds": {"end": {"1_3": {"handicap": "2.5", "over_od": "1.9"}}}}}
        )
        assert extract_historical_line(payload, 2.5) is None
