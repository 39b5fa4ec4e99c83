import asyncio
import random
from contextlib import contextmanager
from typing import Annotated, Any, Callable, Iterable, Optional

import asyncpg
from fastapi import Depends
from loguru import logger

from .. import dependencies
from ..constants import Server
from ..errors import InvalidLineFilter, QueryCancelled, StorageError
from ..schemas import COLUMNS, LineFilter


def project(projection: Optional[Iterable[str]] = None) -> tuple[str, ...]:
    """
    Validate the requested columns and put them in table order.

    Args:
        projection: Column names to return. All columns when omitted.

    Returns:
        The selected column names, ordered like the `lines` table.

    Raises:
        InvalidLineFilter: If the projection is empty or names an unknown column.
    """
    if projection is None:
        return COLUMNS
    requested = set(projection)
    unknown = requested.difference(COLUMNS)
    if unknown:
        raise InvalidLineFilter(
            [
                {"loc": ["projection"], "msg": f"Unknown column '{name}'", "type": "value_error"}
                for name in sorted(unknown)
            ]
        )
    if not requested:
        raise InvalidLineFilter(
            [{"loc": ["projection"], "msg": "No columns selected", "type": "value_error"}]
        )
    return tuple(column for column in COLUMNS if column in requested)


def _where(line_filter: LineFilter, first_index: int) -> tuple[str, list[Any]]:
    bound = line_filter.bound()
    conditions = [
        f"{column} = ${index}" for index, column in enumerate(bound, start=first_index)
    ]
    clause = f" WHERE {' AND '.join(conditions)}" if conditions else ""
    return clause, list(bound.values())


def build_random_query(
    line_filter: LineFilter, columns: tuple[str, ...]
) -> tuple[str, list[Any]]:
    """
    Build the statement picking one line at a random offset.

    Counting and fetching happen in the same statement, so both see the same
    snapshot of the table. `$1` is the random fraction in `[0, 1)`; the filter
    values follow in table order. With no matching rows the offset is 0 and the
    statement returns nothing.

    Column names only ever come from `COLUMNS`, values are always bound.

    Returns:
        The query text and the filter values to bind after the fraction.
    """
    where, args = _where(line_filter, first_index=2)
    query = (
        f"SELECT {', '.join(columns)} FROM lines{where}"
        f" OFFSET floor($1::double precision * (SELECT count(*) FROM lines{where}))::bigint"
        " LIMIT 1"
    )
    return query, args


def build_list_query(
    line_filter: LineFilter, columns: tuple[str, ...]
) -> tuple[str, list[Any]]:
    """Build the statement returning every line matching the filter."""
    where, args = _where(line_filter, first_index=1)
    return f"SELECT {', '.join(columns)} FROM lines{where}", args


@contextmanager
def _storage_errors(timeout: Optional[float]):
    try:
        yield
    except asyncpg.QueryCanceledError as exc:
        raise QueryCancelled("Line query was cancelled by the database") from exc
    except asyncio.TimeoutError as exc:
        raise QueryCancelled(f"Line query did not finish within {timeout}s") from exc
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        raise StorageError(f"Line query failed: {exc}") from exc


async def select_random_line(
    pool: asyncpg.Pool,
    line_filter: LineFilter,
    projection: Optional[Iterable[str]] = None,
    *,
    timeout: Optional[float] = None,
    fraction: Callable[[], float] = random.random,
) -> Optional[dict]:
    """
    Select one line matching the filter, uniformly at random.

    The offset is `floor(fraction() * count)` over the matching rows, which
    gives every matching row the same chance. One round-trip to the database,
    on a connection borrowed from the pool for this call only.

    Args:
        pool: Connection pool to borrow a connection from.
        line_filter: Constraints the selected line must satisfy.
        projection: Columns to return. All columns when omitted.
        timeout: Seconds the call may spend waiting for a connection and again
            for the query. No limit when None.
        fraction: Source of random numbers in `[0, 1)`.

    Returns:
        The selected columns as a dictionary, or None if no line matches.

    Raises:
        InvalidLineFilter: If the projection is not usable.
        QueryCancelled: If the query hit the timeout or was cancelled server side.
        StorageError: If the database query or connection failed.
    """
    columns = project(projection)
    query, args = build_random_query(line_filter, columns)
    value = fraction()
    if not 0.0 <= value < 1.0:
        raise ValueError(f"Random fraction {value} is outside [0, 1)")

    with _storage_errors(timeout):
        async with pool.acquire(timeout=timeout) as con:
            row = await con.fetchrow(query, value, *args, timeout=timeout)

    if row is None:
        logger.debug(f"No line matches {line_filter.bound()}")
        return None
    return dict(row)


class LineService:
    """
    Service class for reading lines of the script.
    """

    def __init__(self, pool: dependencies.PoolDep):
        """
        Initialize the LineService with a database connection pool.

        Args:
            pool: Database connection pool dependency.
        """
        self.pool = pool
        self.timeout = Server.QUERY_TIMEOUT
        self.fraction = random.random

    async def select_random(
        self,
        projection: Optional[Iterable[str]] = None,
        *,
        season: Any = None,
        episode: Any = None,
        character: Any = None,
    ) -> Optional[dict]:
        """
        Get a random line, validating the raw filter values first.

        Args:
            projection: Columns to return. All columns when omitted.
            season: Season number, as received from the client.
            episode: Episode number within the season.
            character: Speaker name in any capitalization.

        Returns:
            The selected line, or None if no line matches.
        """
        line_filter = LineFilter.parse(
            season=season, episode=episode, character=character
        )
        return await select_random_line(
            self.pool,
            line_filter,
            projection,
            timeout=self.timeout,
            fraction=self.fraction,
        )

    async def get_lines(
        self,
        projection: Optional[Iterable[str]] = None,
        *,
        season: Any = None,
        episode: Any = None,
        character: Any = None,
    ) -> list[dict]:
        """
        Get every line matching the filter.

        Returns:
            List of lines as dictionaries, empty when nothing matches.
        """
        line_filter = LineFilter.parse(
            season=season, episode=episode, character=character
        )
        query, args = build_list_query(line_filter, project(projection))
        with _storage_errors(self.timeout):
            async with self.pool.acquire(timeout=self.timeout) as con:
                rows = await con.fetch(query, *args, timeout=self.timeout)
        return [dict(r) for r in rows]


LineServiceDep = Annotated[LineService, Depends(LineService)]
