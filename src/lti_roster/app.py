"""
FastAPI application factory.

The tool context (store, launch data storage, signing key) is built before
the app and passed in explicitly; the lifespan only releases it on shutdown.
"""

from dotenv import load_dotenv

# Load .env file before any other imports that might need env vars
load_dotenv()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from lti_roster.context import ToolContext, build_context
from lti_roster.handlers import CompletionHandler, roster_page
from lti_roster.lti.routes import router as lti_router
from lti_roster.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs every request made to the HTTP server."""

    async def dispatch(self, request: Request, call_next):
        client = request.client
        logger.info(
            "request method=%s uri=%s remote=%s",
            request.method,
            request.url.path,
            f"{client.host}:{client.port}" if client else "-",
        )
        return await call_next(request)


def create_app(
    context: ToolContext,
    settings: Settings | None = None,
    completion_handler: CompletionHandler = roster_page,
) -> FastAPI:
    """Create and configure the FastAPI application around *context*."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        context.close()
        logger.info("Registration store closed")

    app = FastAPI(
        title="LTI Roster Tool",
        description="LTI 1.3 tool that renders the launching course's roster via NRPS",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.tool_context = context
    app.state.completion_handler = completion_handler

    # CSP middleware for LTI iframe embedding
    class CSPMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            response: Response = await call_next(request)
            response.headers["Content-Security-Policy"] = (
                f"frame-ancestors {settings.csp_frame_ancestors}"
            )
            # Remove X-Frame-Options so CSP frame-ancestors takes precedence
            if "X-Frame-Options" in response.headers:
                del response.headers["X-Frame-Options"]
            return response

    app.add_middleware(CSPMiddleware)
    app.add_middleware(RequestLogMiddleware)

    app.include_router(lti_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


def get_app() -> FastAPI:
    """Build the app from the environment (``uvicorn --factory lti_roster.app:get_app``)."""
    settings = get_settings()
    configure_logging(settings.log_level)
    return create_app(build_context(settings), settings)
