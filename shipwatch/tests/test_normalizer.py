"""Tests for field normalization (fusion_engine/normalizer.py)."""
import pytest

from fusion_engine.normalizer import _clean_id, extract_position, normalize_vessel


class TestAliases:
    def test_canonical_fields(self):
        record = normalize_vessel({
            "mmsi": 338123456, "imo": 9123456, "name": "USNS TEST",
            "lat": 41.0, "lon": 11.5, "flag": "us", "shipType": 35,
            "typeText": "Military ops", "destination": "NAPLES",
        })
        assert record.mmsi == "338123456"
        assert record.imo == "9123456"
        assert record.name == "USNS TEST"
        assert (record.lat, record.lon) == (41.0, 11.5)
        assert record.flag == "US"
        assert record.ship_type == 35
        assert record.type_text == "Military ops"
        assert record.destination == "NAPLES"
        assert record.category is None

    def test_provider_spellings(self):
        record = normalize_vessel({
            "MMSI": "428000001", "SHIPNAME": "ZIM SAMMY@@@@", "LAT": "32.8",
            "LON": "35.0", "SHIPTYPE": "70", "TYPE_NAME": "Container Ship",
            "cargo": "project cargo",
        })
        assert record.mmsi == "428000001"
        assert record.name == "ZIM SAMMY"
        assert (record.lat, record.lon) == (32.8, 35.0)
        assert record.ship_type == 70
        assert record.type_text == "Container Ship"
        assert record.subtype == "project cargo"

    def test_first_non_empty_alias_wins(self):
        record = normalize_vessel({"mmsi": "", "MMSI": "247000001", "lat": 1, "lon": 1})
        assert record.mmsi == "247000001"

    def test_imo_prefix_stripped(self):
        assert normalize_vessel({"imo": "IMO 9123456"}).imo == "9123456"

    def test_non_numeric_ship_type_dropped(self):
        record = normalize_vessel({"mmsi": "1", "shipType": "warship"})
        assert record.ship_type is None


class TestPosition:
    def test_nested_position(self):
        assert extract_position({"position": {"latitude": 43.5, "longitude": 10.3}}) == (43.5, 10.3)

    def test_flat_beats_nested(self):
        data = {"lat": 1.0, "lon": 2.0, "position": {"lat": 3.0, "lon": 4.0}}
        assert extract_position(data) == (1.0, 2.0)

    @pytest.mark.parametrize("lat, lon", [(91, 10), (10, 181), (-91, 0)])
    def test_not_available_sentinels(self, lat, lon):
        assert extract_position({"lat": lat, "lon": lon}) == (None, None)

    def test_half_position_is_no_position(self):
        assert extract_position({"lat": 10}) == (None, None)

    def test_unpositioned_record_with_identity_is_kept(self):
        record = normalize_vessel({"mmsi": "247000001", "name": "NO FIX"})
        assert record is not None
        assert not record.has_position


class TestRejection:
    def test_nothing_usable(self):
        assert normalize_vessel({"speed": 12.0, "heading": 90}) is None

    def test_position_without_identity_is_kept(self):
        record = normalize_vessel({"lat": 40.0, "lon": 10.0, "shipType": 35})
        assert record.has_position
        assert not record.has_identity

    @pytest.mark.parametrize("value", [0, "0", "", None, "  ", 0.0, True])
    def test_blank_ids(self, value):
        assert _clean_id(value) is None

    def test_float_id_becomes_integer_text(self):
        assert _clean_id(247000001.0) == "247000001"
