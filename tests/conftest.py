import asyncio
import math
import re
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

# Add project root to sys.path for imports
sys.path.append(str(Path(__file__).resolve().parent.parent))

from officeapi.main import app
from officeapi.utils.analytics import Analytics
from officeapi.utils.dependencies import get_analytics, get_pool


LINES = [
    {"season": 1, "episode": 1, "character": "Michael", "line": "line A"},
    {"season": 1, "episode": 1, "character": "Jim", "line": "line B"},
    {"season": 1, "episode": 2, "character": "Pam", "line": "line C"},
    {"season": 2, "episode": 1, "character": "Michael", "line": "line D"},
    {"season": 2, "episode": 3, "character": "Dwight", "line": "line E"},
    {"season": 2, "episode": 3, "character": "Michael", "line": "line F"},
]

_SELECT = re.compile(
    r"^SELECT (?P<columns>.+?) FROM lines(?: WHERE (?P<where>.+?))?(?: OFFSET|$)"
)
_CONDITION = re.compile(r"(\w+) = \$(\d+)")


class FakeConnection:
    """Answers the statements built by the line service from an in-memory table."""

    def __init__(self, pool: "FakePool") -> None:
        self.pool = pool

    def _matches(self, query: str, args: tuple) -> tuple[list[str], list[dict]]:
        match = _SELECT.match(query)
        assert match, f"unexpected query: {query}"
        columns = match["columns"].split(", ")
        conditions = _CONDITION.findall(match["where"] or "")
        rows = [
            row
            for row in self.pool.rows
            if all(row[column] == args[int(index) - 1] for column, index in conditions)
        ]
        return columns, rows

    async def _call(self, query: str, args: tuple, timeout):
        self.pool.calls.append((query, args, timeout))
        if self.pool.delay:
            await asyncio.sleep(self.pool.delay)
        if self.pool.error is not None:
            raise self.pool.error

    async def fetchrow(self, query: str, *args, timeout=None):
        await self._call(query, args, timeout)
        columns, rows = self._matches(query, args)
        offset = math.floor(args[0] * len(rows))
        if offset >= len(rows):
            return None
        return {column: rows[offset][column] for column in columns}

    async def fetch(self, query: str, *args, timeout=None):
        await self._call(query, args, timeout)
        columns, rows = self._matches(query, args)
        return [{column: row[column] for column in columns} for row in rows]


class FakePool:
    """Stand-in for `asyncpg.Pool` that keeps track of borrowed connections."""

    def __init__(self, rows: list[dict]) -> None:
        self.rows = rows
        self.calls: list[tuple] = []
        self.error: BaseException | None = None
        self.delay = 0.0
        self.in_use = 0
        self.acquired = 0
        self.acquire_timeouts: list = []
        # set to simulate a pool with no free connection
        self.exhausted = False

    @asynccontextmanager
    async def acquire(self, *, timeout=None):
        self.acquire_timeouts.append(timeout)
        if self.exhausted:
            raise asyncio.TimeoutError()
        self.in_use += 1
        self.acquired += 1
        try:
            yield FakeConnection(self)
        finally:
            self.in_use -= 1


@pytest.fixture
def anyio_backend():
    # asyncpg only runs on asyncio
    return "asyncio"


@pytest.fixture
def fake_pool():
    return FakePool(list(LINES))


@pytest.fixture
async def analytics():
    """Enabled analytics whose sent events are collected in `analytics.sent`."""
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(204)

    tracker = Analytics(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        measurement_id="G-TEST",
        api_secret="secret",
    )
    tracker.sent = sent
    yield tracker
    await tracker.aclose()


@pytest.fixture
async def client(fake_pool, analytics):
    """AsyncClient against the app, with the database and analytics replaced."""

    async def override_get_pool():
        return fake_pool

    async def override_get_analytics():
        return analytics

    app.dependency_overrides[get_pool] = override_get_pool
    app.dependency_overrides[get_analytics] = override_get_analytics
    # every test starts with a full rate limit budget
    app.state.limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def dataset():
    return list(LINES)
