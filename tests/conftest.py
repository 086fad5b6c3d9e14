from datetime import date

import pytest
import requests

from leadgen.config import Settings

TODAY = date(2024, 6, 1)


class FakeFetcher:
    """In-memory stand-in for SocrataClient keyed by endpoint.

    Values are row lists or callables taking the request params. Paged
    requests ($offset present) are sliced; batch requests get every row.
    """

    def __init__(self, data=None, fail=()):
        self.data = dict(data or {})
        self.fail = set(fail)
        self.calls = []

    def fetch(self, endpoint, params):
        self.calls.append((endpoint, dict(params)))
        if endpoint in self.fail:
            raise requests.ConnectionError(f"connection refused: {endpoint}")
        rows = self.data.get(endpoint, [])
        if callable(rows):
            return rows(params)
        if "$offset" in params:
            start = params["$offset"]
            return list(rows[start:start + params["$limit"]])
        return list(rows)

    def calls_to(self, endpoint):
        return [params for ep, params in self.calls if ep == endpoint]


def pluto_row(block, lot, cd="105", address=None, **extra):
    row = {
        "bbl": f"1{int(block):05d}{int(lot):04d}.00000000",
        "borough": "MN",
        "block": str(block),
        "lot": str(lot),
        "cd": cd,
        "address": address or f"{lot} WEST 40 STREET",
        "lotarea": "1500",
        "builtfar": "2.0",
        "residfar": "2.0",
        "commfar": "0",
        "facilfar": "0",
        "unitsres": "10",
    }
    row.update(extra)
    return row


@pytest.fixture
def settings():
    return Settings(page_delay=0, batch_delay=0)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()
