"""Airport coordinate lookup backed by a YAML reference file."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from turbcast.errors import AirportNotFoundError
from turbcast.models import Airport

logger = logging.getLogger(__name__)


class AirportDirectory:
    """Airports indexed by IATA and ICAO code.

    Lookups are case-insensitive and accept either code.
    """

    def __init__(self, airports: list[Airport]):
        self._airports = list(airports)
        self._by_code: dict[str, Airport] = {}
        for airport in self._airports:
            self._by_code[airport.iata.upper()] = airport
            if airport.icao:
                self._by_code[airport.icao.upper()] = airport

    @classmethod
    def from_yaml(cls, path: Path) -> AirportDirectory:
        """Load airports from a YAML file with a top-level ``airports`` list."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        airports = [Airport(**entry) for entry in data.get("airports", [])]
        logger.debug("Loaded %d airports from %s", len(airports), path)
        return cls(airports)

    def __len__(self) -> int:
        return len(self._airports)

    def __contains__(self, code: str) -> bool:
        return code.strip().upper() in self._by_code

    def get(self, code: str) -> Airport:
        """Resolve an IATA or ICAO code.

        Raises:
            AirportNotFoundError: If the code is unknown.
        """
        airport = self._by_code.get(code.strip().upper())
        if airport is None:
            raise AirportNotFoundError(code)
        return airport

    def search(self, query: str = "", limit: int = 20) -> list[Airport]:
        """Airports whose code, name or city contains ``query``; exact code hits first."""
        q = query.strip().lower()
        if not q:
            return self._airports[:limit]

        exact = [a for a in self._airports if q in (a.iata.lower(), a.icao.lower())]
        partial = [
            a for a in self._airports
            if a not in exact and (
                q in a.iata.lower()
                or q in a.icao.lower()
                or q in a.name.lower()
                or q in a.city.lower()
            )
        ]
        return (exact + partial)[:limit]
