from typing import Any

from fastapi import APIRouter, Request
from loguru import logger

from officeapi.utils.dependencies import AnalyticsDep
from officeapi.utils.errors import LineQueryError, raise_not_found
from officeapi.utils.schemas import Line
from officeapi.utils.services.line_service import LineService, LineServiceDep

router = APIRouter()


async def random_line(
    request: Request,
    lines: LineService,
    analytics: AnalyticsDep,
    event: str,
    projection: set[str],
    **filters: Any,
) -> dict:
    """
    Pick a random line and report the outcome to analytics.

    The analytics event is only scheduled once the outcome is known and does
    not wait for it to be sent.

    Raises:
        HTTPException: 404 if no line matches the filters.
    """
    try:
        row = await lines.select_random(projection, **filters)
    except LineQueryError as exc:
        analytics.track(event, outcome=type(exc).__name__)
        raise
    analytics.track(event, outcome="found" if row else "not_found")
    if row is None:
        raise_not_found(request)
    return row


@router.get("/random", response_model=Line, response_model_exclude_unset=True)
async def get_random_line(
    request: Request, lines: LineServiceDep, analytics: AnalyticsDep
):
    """Get a random line from the whole script."""
    logger.info("Get random line")
    return await random_line(
        request,
        lines,
        analytics,
        "get_random_line",
        {"season", "episode", "character", "line"},
    )


@router.get(
    "/seasons/{season}/random",
    response_model=Line,
    response_model_exclude_unset=True,
)
async def get_random_line_from_season(
    request: Request, season: str, lines: LineServiceDep, analytics: AnalyticsDep
):
    """Get a random line from the given season."""
    logger.info(f"Get random line from season {season}")
    return await random_line(
        request,
        lines,
        analytics,
        "get_random_line_season",
        {"character", "line"},
        season=season,
    )


@router.get(
    "/seasons/{season}/episodes/{episode}/random",
    response_model=Line,
    response_model_exclude_unset=True,
)
async def get_random_line_from_episode(
    request: Request,
    season: str,
    episode: str,
    lines: LineServiceDep,
    analytics: AnalyticsDep,
):
    """Get a random line from the given season and episode."""
    logger.info(f"Get random line from season {season}, episode {episode}")
    return await random_line(
        request,
        lines,
        analytics,
        "get_random_line_episode",
        {"character", "line"},
        season=season,
        episode=episode,
    )


@router.get(
    "/characters/{character}/random",
    response_model=Line,
    response_model_exclude_unset=True,
)
async def get_random_line_from_character(
    request: Request, character: str, lines: LineServiceDep, analytics: AnalyticsDep
):
    """Get a random line spoken by the given character."""
    logger.info(f"Get random line from character {character}")
    return await random_line(
        request,
        lines,
        analytics,
        "get_random_line_character",
        {"season", "episode", "line"},
        character=character,
    )


@router.get(
    "/seasons/{season}/characters/{character}/random",
    response_model=Line,
    response_model_exclude_unset=True,
)
async def get_random_line_from_season_character(
    request: Request,
    season: str,
    character: str,
    lines: LineServiceDep,
    analytics: AnalyticsDep,
):
    """Get a random line spoken by the given character in the given season."""
    logger.info(f"Get random line from character {character} in season {season}")
    return await random_line(
        request,
        lines,
        analytics,
        "get_random_line_season_character",
        {"episode", "line"},
        season=season,
        character=character,
    )


@router.get(
    "/seasons/{season}/episodes/{episode}/characters/{character}/random",
    response_model=Line,
    response_model_exclude_unset=True,
)
async def get_random_line_from_episode_character(
    request: Request,
    season: str,
    episode: str,
    character: str,
    lines: LineServiceDep,
    analytics: AnalyticsDep,
):
    """Get a random line spoken by the given character in the given episode."""
    logger.info(
        f"Get random line from character {character} in season {season}, "
        f"episode {episode}"
    )
    return await random_line(
        request,
        lines,
        analytics,
        "get_random_line_episode_character",
        {"line"},
        season=season,
        episode=episode,
        character=character,
    )


@router.get(
    "/seasons/{season}/episodes/{episode}/characters/{character}",
    response_model=list[Line],
    response_model_exclude_unset=True,
)
async def get_episode_lines_for_character(
    request: Request,
    season: str,
    episode: str,
    character: str,
    lines: LineServiceDep,
    analytics: AnalyticsDep,
):
    """
    Get every line from given character, season, and episode.

    Raises:
        HTTPException: 404 if the character has no lines in the episode.
    """
    logger.info("Get every line from given character, season, and episode")
    try:
        rows = await lines.get_lines(
            {"line"}, season=season, episode=episode, character=character
        )
    except LineQueryError as exc:
        analytics.track("get_episode_lines", outcome=type(exc).__name__)
        raise
    analytics.track("get_episode_lines", outcome="found" if rows else "not_found")
    if not rows:
        raise_not_found(request)
    return rows
