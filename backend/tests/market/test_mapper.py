"""Tests for EntityMapper."""

import pytest
from market_fakes import make_instrument, make_ticker

from cryptodash.market.errors import DataFailure, MappingError, MappingErrorReason
from cryptodash.market.mapper import EntityMapper
from cryptodash.market.models import Instrument, ListingStatus


class TestMapInstrumentAndTicker:
    """Unit tests for single-record mapping."""

    def test_basic_mapping(self):
        """Test price, change, volume, name and timestamp."""
        mapper = EntityMapper()
        asset = mapper.map_instrument_and_ticker(
            make_instrument("BTC"),
            make_ticker("BTC", last="67000.5", vol="12000", open_24h="66000.5", ts="1707580800000"),
        )
        assert asset.symbol == "BTC"
        assert asset.name == "Bitcoin"
        assert asset.price == 67000.5
        assert asset.price_change_24h == 1000.0
        assert asset.volume_24h == 12000.0
        assert asset.status is ListingStatus.ACTIVE
        assert asset.last_updated == 1707580800.0
        assert asset.has_volume_spike is False

    def test_unknown_symbol_uses_symbol_as_name(self):
        """Test display name falls back to the symbol."""
        asset = EntityMapper().map_instrument_and_ticker(make_instrument("PEPE"), make_ticker("PEPE"))
        assert asset.name == "PEPE"

    def test_identifier_mismatch(self):
        """Test differing instrument ids raise IDENTIFIER_MISMATCH."""
        with pytest.raises(MappingError) as exc_info:
            EntityMapper().map_instrument_and_ticker(make_instrument("BTC"), make_ticker("ETH"))
        assert exc_info.value.reason is MappingErrorReason.IDENTIFIER_MISMATCH

    @pytest.mark.parametrize("bad", ["", "abc", "NaN", "Infinity", "-inf"])
    def test_invalid_numbers(self, bad):
        """Test empty, non-numeric and non-finite prices are rejected."""
        with pytest.raises(MappingError) as exc_info:
            EntityMapper().map_instrument_and_ticker(make_instrument("BTC"), make_ticker("BTC", last=bad))
        assert exc_info.value.reason is MappingErrorReason.INVALID_NUMBER

    def test_mapping_error_is_data_failure(self):
        """Test mapping errors belong to the data failure family."""
        with pytest.raises(DataFailure):
            EntityMapper().map_instrument_and_ticker(make_instrument("BTC"), make_ticker("BTC", vol="x"))


class TestFieldParsers:
    """Unit tests for listing state and timestamp parsing."""

    @pytest.mark.parametrize(
        "state,expected",
        [
            ("live", ListingStatus.ACTIVE),
            ("ACTIVE", ListingStatus.ACTIVE),
            ("suspend", ListingStatus.SUSPENDED),
            ("suspended", ListingStatus.SUSPENDED),
            ("preopen", ListingStatus.DELISTED),
            ("delisted", ListingStatus.DELISTED),
        ],
    )
    def test_known_states(self, state, expected):
        """Test the state table."""
        mapper = EntityMapper()
        assert mapper.map_listing_status(state) is expected
        assert mapper.unknown_states == 0

    def test_unknown_state_defaults_to_active(self):
        """Test unrecognised states map to active and are counted."""
        mapper = EntityMapper()
        assert mapper.map_listing_status("test") is ListingStatus.ACTIVE
        assert mapper.unknown_states == 1

    def test_timestamp_fallback(self):
        """Test an unparseable timestamp uses the clock and is counted."""
        mapper = EntityMapper(clock=lambda: 42.0)
        asset = mapper.map_instrument_and_ticker(make_instrument("BTC"), make_ticker("BTC", ts="not-a-time"))
        assert asset.last_updated == 42.0
        assert mapper.timestamp_fallbacks == 1


class TestBatchMapping:
    """Unit tests for list mapping, filtering and updates."""

    def test_map_list_drops_unmatched_and_bad_records(self):
        """Test instruments without tickers and malformed tickers are skipped."""
        mapper = EntityMapper()
        assets = mapper.map_list(
            [make_instrument("BTC"), make_instrument("ETH"), make_instrument("SOL")],
            [make_ticker("BTC"), make_ticker("SOL", last="oops")],
        )
        assert [a.symbol for a in assets] == ["BTC"]

    def test_filter_preserves_whitelist_order(self):
        """Test result order follows the whitelist, not the input."""
        mapper = EntityMapper()
        assets = mapper.map_list(
            [make_instrument(s) for s in ("ETH", "LTC", "BTC")],
            [make_ticker(s) for s in ("ETH", "LTC", "BTC")],
        )
        tracked = EntityMapper.filter_to_tracked_set(assets, ["BTC", "ETH", "XRP"])
        assert [a.symbol for a in tracked] == ["BTC", "ETH"]

    def test_update_with_ticker_preserves_identity_and_flag(self):
        """Test update recomputes market fields and keeps name, status and spike flag."""
        mapper = EntityMapper()
        asset = mapper.map_instrument_and_ticker(make_instrument("BTC", state="suspend"), make_ticker("BTC"))
        asset = asset.with_spike(True)

        updated = mapper.update_with_ticker(asset, make_ticker("BTC", last=120, vol=2000, open_24h=100))
        assert updated.price == 120.0
        assert updated.price_change_24h == 20.0
        assert updated.volume_24h == 2000.0
        assert updated.name == "Bitcoin"
        assert updated.status is ListingStatus.SUSPENDED
        assert updated.has_volume_spike is True

    def test_update_with_foreign_ticker(self):
        """Test updating with another symbol's ticker raises IDENTIFIER_MISMATCH."""
        mapper = EntityMapper()
        asset = mapper.map_instrument_and_ticker(make_instrument("BTC"), make_ticker("BTC"))
        with pytest.raises(MappingError) as exc_info:
            mapper.update_with_ticker(asset, make_ticker("ETH"))
        assert exc_info.value.reason is MappingErrorReason.IDENTIFIER_MISMATCH

    def test_non_string_state_does_not_fail_batch(self):
        """Test an instrument with a null state maps as active instead of failing the batch."""
        mapper = EntityMapper()
        odd = Instrument(inst_id="ETH-USDT", base_ccy="ETH", quote_ccy="USDT", state=None)  # type: ignore[arg-type]
        assets = mapper.map_list([make_instrument("BTC"), odd], [make_ticker("BTC"), make_ticker("ETH")])
        assert [a.symbol for a in assets] == ["BTC", "ETH"]
        assert assets[1].status is ListingStatus.ACTIVE
        assert mapper.unknown_states == 1
