import asyncpg

from typing import Annotated

from fastapi import Depends, Request

from .analytics import Analytics


async def get_pool(request: Request) -> asyncpg.Pool:
    return request.app.state.pool


async def get_analytics(request: Request) -> Analytics:
    return request.app.state.analytics


PoolDep = Annotated[asyncpg.Pool, Depends(get_pool)]
AnalyticsDep = Annotated[Analytics, Depends(get_analytics)]
