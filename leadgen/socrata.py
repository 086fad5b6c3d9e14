"""
Paginated access to Socrata (NYC Open Data) endpoints.

The pipeline only needs a fetcher with `fetch(endpoint, params) -> rows`.
SocrataClient is the requests-backed one; tests pass an in-memory fake.
On top of that sit the two fetch policies every stage uses:

  fetch_all_pages       $limit/$offset until a short page comes back
  fetch_by_key_batches  one OR/IN filter per batch of join keys

Neither retries. A failed page ends the page loop with the rows read so
far; a failed batch is recorded and skipped.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Protocol, Sequence

import requests

log = logging.getLogger(__name__)

Record = dict[str, Any]


class Fetcher(Protocol):
    def fetch(self, endpoint: str, params: dict) -> list[Record]: ...


class SocrataClient:
    """requests.Session wrapper for SODA resource endpoints."""

    def __init__(self, app_token: str | None = None, timeout: float = 60.0,
                 session: requests.Session | None = None):
        self.session = session or requests.Session()
        self.timeout = timeout
        if app_token:
            self.session.headers["X-App-Token"] = app_token

    def fetch(self, endpoint: str, params: dict) -> list[Record]:
        resp = self.session.get(endpoint, params=params, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"unexpected payload from {endpoint}: {str(data)[:200]}")
        return data

    def close(self):
        self.session.close()


def as_fetcher(fetcher) -> Fetcher:
    """Accept either a Fetcher or a bare fetch(endpoint, params) callable."""
    if hasattr(fetcher, "fetch"):
        return fetcher
    if callable(fetcher):
        return _CallableFetcher(fetcher)
    raise TypeError(f"not a fetcher: {fetcher!r}")


class _CallableFetcher:
    def __init__(self, fn):
        self.fn = fn

    def fetch(self, endpoint, params):
        return self.fn(endpoint, params)


@dataclass
class BatchFailure:
    index: int
    error: str


@dataclass
class FetchResult:
    records: list[Record] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)
    batches: int = 0
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        """True when there was work to do and none of it succeeded."""
        return self.batches > 0 and len(self.failures) == self.batches

    @property
    def error(self) -> str | None:
        return self.failures[-1].error if self.failures else None

    def __len__(self):
        return len(self.records)


# ── SoQL helpers ─────────────────────────────────────────────────────────

def soql_quote(value) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def in_clause(column: str, values: Sequence) -> str:
    return f"{column} IN({','.join(soql_quote(v) for v in values)})"


def or_clause(parts: Sequence[str]) -> str:
    return " OR ".join(f"({p})" for p in parts)


def and_clause(*parts: str | None) -> str:
    return " AND ".join(f"({p})" for p in parts if p)


def chunked(items: Sequence, size: int) -> Iterator[list]:
    if size < 1:
        raise ValueError("batch size must be at least 1")
    items = list(items)
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _query(where=None, select=None, order=None, limit=None, offset=None) -> dict:
    params = {}
    if select:
        params["$select"] = select
    if where:
        params["$where"] = where
    if order:
        params["$order"] = order
    if limit is not None:
        params["$limit"] = limit
    if offset is not None:
        params["$offset"] = offset
    return params


# ── Page loop ────────────────────────────────────────────────────────────

def iter_pages(fetcher, endpoint: str, where: str | None = None, page_size: int = 50000,
               select: str | None = None, order: str | None = None, delay: float = 0.1,
               should_stop: Callable[[], bool] | None = None) -> Iterator[list[Record]]:
    """Yield pages until one comes back shorter than page_size.

    Exceptions from the fetcher propagate to the consumer after every
    earlier page has been yielded.
    """
    fetcher = as_fetcher(fetcher)
    offset = 0
    while True:
        if should_stop and should_stop():
            return
        params = _query(where, select, order, page_size, offset)
        rows = fetcher.fetch(endpoint, params)
        log.debug("%s offset %d -> %d rows", endpoint, offset, len(rows))
        yield rows
        if len(rows) < page_size:
            return
        offset += page_size
        if delay:
            time.sleep(delay)


def fetch_all_pages(fetcher, endpoint: str, where: str | None = None, page_size: int = 50000,
                    select: str | None = None, order: str | None = None, delay: float = 0.1,
                    should_stop: Callable[[], bool] | None = None) -> FetchResult:
    """Read every page of a query. A page error keeps the rows already read."""
    result = FetchResult()
    pages = iter_pages(fetcher, endpoint, where, page_size, select, order, delay, should_stop)
    while True:
        try:
            rows = next(pages)
        except StopIteration:
            break
        except Exception as e:
            log.warning("%s: page %d failed after %d rows: %s",
                        endpoint, result.batches, len(result.records), e)
            result.failures.append(BatchFailure(result.batches, str(e)))
            result.batches += 1
            break
        result.batches += 1
        result.records.extend(rows)
    result.cancelled = bool(should_stop and should_stop())
    return result


# ── Key batches ──────────────────────────────────────────────────────────

def fetch_by_key_batches(fetcher, endpoint: str, keys: Sequence, batch_size: int,
                         predicate_builder: Callable[[list], str],
                         select: str | None = None, limit_per_batch: int | None = None,
                         delay: float = 0.08,
                         should_stop: Callable[[], bool] | None = None) -> FetchResult:
    """Fetch rows for `keys`, batch_size keys per request.

    predicate_builder turns one batch of keys into a $where expression.
    A failed batch is logged, recorded in result.failures and left out.
    """
    fetcher = as_fetcher(fetcher)
    result = FetchResult()
    batches = list(chunked(keys, batch_size))
    for i, batch in enumerate(batches):
        if should_stop and should_stop():
            result.cancelled = True
            break
        where = predicate_builder(batch)
        params = _query(where, select, limit=limit_per_batch)
        result.batches += 1
        try:
            rows = fetcher.fetch(endpoint, params)
        except Exception as e:
            log.warning("%s: batch %d/%d failed: %s", endpoint, i + 1, len(batches), e)
            result.failures.append(BatchFailure(i, str(e)))
        else:
            log.debug("%s: batch %d/%d -> %d rows", endpoint, i + 1, len(batches), len(rows))
            result.records.extend(rows)
        if delay and i + 1 < len(batches):
            time.sleep(delay)
    return result
