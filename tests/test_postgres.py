import asyncio
from pathlib import Path

import asyncpg
import pytest
from httpx import ASGITransport, AsyncClient

from officeapi.main import app
from officeapi.utils.dependencies import get_analytics, get_pool
from officeapi.utils.schemas import LineFilter
from officeapi.utils.services.line_service import LineService, select_random_line

INIT_SQL = Path(__file__).resolve().parent.parent / "postgres" / "init.sql"

postgres = pytest.importorskip("testcontainers.postgres")


@pytest.fixture
async def test_pool(dataset):
    """Start container, create pool, and initialize schema."""
    container = postgres.PostgresContainer(
        "postgres:16", dbname="theoffice_test", username="test", password="test_password"
    )
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"PostgreSQL container unavailable: {exc}")

    try:
        conn_url = container.get_connection_url().replace("+psycopg2", "")
        pool = await asyncpg.create_pool(conn_url)

        # Initialize schema + seed data
        async with pool.acquire() as conn:
            await conn.execute(INIT_SQL.read_text())
            await conn.executemany(
                "INSERT INTO lines (season, episode, character, line) VALUES ($1, $2, $3, $4)",
                [tuple(row.values()) for row in dataset],
            )

        yield pool
        await pool.close()
    finally:
        container.stop()


@pytest.mark.anyio
async def test_every_fraction_hits_a_matching_row(test_pool):
    line_filter = LineFilter(season=1, episode=1)
    seen = set()
    for fraction in (0.0, 0.49, 0.5, 0.99):
        row = await select_random_line(
            test_pool, line_filter, {"character", "line"}, fraction=lambda: fraction
        )
        assert row in (
            {"character": "Michael", "line": "line A"},
            {"character": "Jim", "line": "line B"},
        )
        seen.add(row["line"])
    assert seen == {"line A", "line B"}


@pytest.mark.anyio
async def test_no_match_on_real_database(test_pool):
    for fraction in (0.0, 0.7):
        row = await select_random_line(
            test_pool, LineFilter(character="NonExistent"), fraction=lambda: fraction
        )
        assert row is None


@pytest.mark.anyio
async def test_concurrent_selections_on_real_database(test_pool, dataset):
    rows = await asyncio.gather(
        *(select_random_line(test_pool, LineFilter()) for _ in range(100))
    )
    assert all(row in dataset for row in rows)


@pytest.mark.anyio
async def test_get_lines_on_real_database(test_pool):
    rows = await LineService(test_pool).get_lines(
        {"line"}, season="2", episode="3", character="dwight"
    )
    assert rows == [{"line": "line E"}]


@pytest.mark.anyio
async def test_routes_on_real_database(test_pool, analytics):
    async def override_get_pool():
        return test_pool

    async def override_get_analytics():
        return analytics

    app.dependency_overrides[get_pool] = override_get_pool
    app.dependency_overrides[get_analytics] = override_get_analytics
    app.state.limiter.reset()
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            res = await ac.get("/seasons/2/characters/michael/random")
            assert res.status_code == 200
            assert res.json() in (
                {"episode": 1, "line": "line D"},
                {"episode": 3, "line": "line F"},
            )

            res = await ac.get("/seasons/9/random")
            assert res.status_code == 404
    finally:
        app.dependency_overrides.clear()


@pytest.mark.anyio
@pytest.mark.parametrize(
    "path",
    [
        "/seasons/99999999999/random",
        "/seasons/1/episodes/3000000000/random",
        "/characters/Mi%00chael/random",
        "/seasons/1/episodes/1/characters/Mi%00chael",
    ],
)
async def test_values_the_columns_cannot_hold_are_rejected(test_pool, analytics, path):
    async def override_get_pool():
        return test_pool

    async def override_get_analytics():
        return analytics

    app.dependency_overrides[get_pool] = override_get_pool
    app.dependency_overrides[get_analytics] = override_get_analytics
    app.state.limiter.reset()
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            res = await ac.get(path)
            assert res.status_code == 400

            res = await ac.get("/seasons/1/random")
            assert res.status_code == 200
    finally:
        app.dependency_overrides.clear()
