import datetime
import socket
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from officeapi.endpoints import lines
from officeapi.utils.analytics import Analytics
from officeapi.utils.constants import Server
from officeapi.utils.database import create_pool
from officeapi.utils.dependencies import AnalyticsDep
from officeapi.utils.errors import InvalidLineFilter, QueryCancelled, StorageError
from officeapi.utils.log import setup_logging

description = """Random lines from The Office script"""

content_security_policy = "; ".join(
    [
        "default-src 'self'",
        f"connect-src {' '.join(Server.CSP_CONNECT_SRC)}",
        f"script-src {' '.join(Server.CSP_SCRIPT_SRC)}",
    ]
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(Server)
    try:
        hostname = socket.gethostname()
        local_ip = socket.gethostbyname(hostname)

        logger.info(f"Local network: http://{local_ip}:{Server.PORT}")
    except OSError:
        logger.trace(
            "Startup failed to receive network IP address, proceeding anyways."
        )

    logger.info(f"Server started at: {datetime.datetime.now(datetime.timezone.utc)}")

    app.state.pool = await create_pool(Server)
    app.state.analytics = Analytics.from_settings(Server)
    if not app.state.analytics.enabled:
        logger.info("Google Analytics is not configured, events are dropped.")

    yield
    # closing down, anything after yield will be ran as shutdown event.
    await app.state.analytics.aclose()
    await app.state.pool.close()
    logger.info(
        f"Server shutting down at: {datetime.datetime.now(datetime.timezone.utc)}"
    )


app = FastAPI(
    title="The Office Script API",
    description=description,
    version=Server.APP_VERSION,
    license_info={
        "name": "MIT license",
    },
    lifespan=lifespan,
)

# Configure rate limiting, one bucket per client address across all routes
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[Server.RATE_LIMIT],
    headers_enabled=True,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(GZipMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=Server.CORS_ORIGINS,
    allow_methods=["GET"],
)

app.include_router(lines.router, tags=["lines"])


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", content_security_policy)
    return response


@app.exception_handler(InvalidLineFilter)
async def invalid_filter_handler(request: Request, exception: InvalidLineFilter):
    """Reject filters that cannot be queried, before any database work."""
    logger.info(f"Rejected filter on {request.url.path}: {exception}")
    return JSONResponse(status_code=400, content={"detail": exception.errors})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exception: StorageError):
    """Log database failures with context, without leaking them to the client."""
    logger.opt(exception=exception).error(
        f"Database failure on {request.method} {request.url.path}"
    )
    return Response(content="Server error", status_code=500)


@app.exception_handler(QueryCancelled)
async def query_cancelled_handler(request: Request, exception: QueryCancelled):
    logger.warning(f"{exception} on {request.method} {request.url.path}")
    return Response(status_code=504)


@app.get("/", include_in_schema=False)
async def home(analytics: AnalyticsDep):
    """
    Serve the front-end, or forward to the documentation when it is not built.
    :return: FileResponse | RedirectResponse
    """
    logger.info("Open homepage")
    analytics.track("open_homepage")
    index = Server.STATIC_DIR / "index.html"
    if index.is_file():
        return FileResponse(index)
    return RedirectResponse("/docs")


@app.get("/status/")
async def server_status(request: Request) -> Response:
    return Response(content="Server is running.", status_code=200)


# Front-end bundle, mounted last so that it never shadows the API routes.
if Server.STATIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=Server.STATIC_DIR, html=True), name="static")
