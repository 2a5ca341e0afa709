"""Tests for the airport directory."""

from __future__ import annotations

import pytest

from turbcast.airports import AirportDirectory
from turbcast.config import CONFIG_DIR
from turbcast.errors import AirportNotFoundError


@pytest.fixture
def yaml_directory(tmp_path):
    path = tmp_path / "airports.yaml"
    path.write_text(
        "airports:\n"
        "  - {iata: SIN, icao: WSSS, name: Changi, city: Singapore, country: SG, lat: 1.3644, lon: 103.9915}\n"
        "  - {iata: SYD, icao: YSSY, name: Kingsford Smith, city: Sydney, country: AU, lat: -33.9399, lon: 151.1753}\n"
    )
    return AirportDirectory.from_yaml(path)


class TestLookup:
    def test_by_iata(self, yaml_directory):
        assert yaml_directory.get("SIN").name == "Changi"

    def test_by_icao_case_insensitive(self, yaml_directory):
        assert yaml_directory.get(" yssy ").iata == "SYD"

    def test_unknown_code(self, yaml_directory):
        with pytest.raises(AirportNotFoundError) as excinfo:
            yaml_directory.get("ZZZ")
        assert str(excinfo.value) == "Airport not found: ZZZ"
        assert excinfo.value.code == "ZZZ"

    def test_not_found_is_a_key_error(self, yaml_directory):
        with pytest.raises(KeyError):
            yaml_directory.get("ZZZ")

    def test_contains(self, yaml_directory):
        assert "wsss" in yaml_directory
        assert "LHR" not in yaml_directory


class TestSearch:
    def test_by_name(self, airports):
        assert [a.iata for a in airports.search("kennedy")] == ["JFK"]

    def test_limit(self, airports):
        assert len(airports.search("", limit=2)) == 2

    def test_no_match(self, airports):
        assert airports.search("atlantis") == []


def test_bundled_reference_data():
    directory = AirportDirectory.from_yaml(CONFIG_DIR / "airports.yaml")
    jfk = directory.get("JFK")
    lhr = directory.get("EGLL")
    assert (jfk.lat, jfk.lon) == (40.6413, -73.7781)
    assert (lhr.lat, lhr.lon) == (51.47, -0.4543)
    assert len(directory) >= 20
