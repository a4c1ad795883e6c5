"""
LTI 1.3 endpoints.

GET|POST /login   - OIDC-initiated login (Step 1-2)
POST     /launch  - JWT validation, then the completion handler (Step 3-4)
GET      /keyset  - Tool's public key set
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pylti1p3.exception import LtiException, OIDCException
from starlette.responses import Response

from lti_roster.context import ToolContext
from lti_roster.errors import InvalidKeyError

from .adapter import FastAPIMessageLaunch, FastAPIOIDCLogin, FastAPIRequest
from .keys import keyset

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lti"])

DEPLOYMENT_ID_CLAIM = "https://purl.imsglobal.org/spec/lti/claim/deployment_id"


def get_tool_context(request: Request) -> ToolContext:
    """Get the tool context attached to the app at startup."""
    ctx = getattr(request.app.state, "tool_context", None)
    if ctx is None:
        raise RuntimeError("LTI tool context not initialized. Build the app with create_app().")
    return ctx


def _login(ctx: ToolContext, lti_request: FastAPIRequest) -> Response:
    target_link_uri = lti_request.get_param("target_link_uri")
    if not target_link_uri:
        target_link_uri = ctx.tool_config.default_target_link_uri(lti_request.get_param("iss"))
    if not target_link_uri:
        raise HTTPException(status_code=400, detail='Missing "target_link_uri" param')

    oidc_login = FastAPIOIDCLogin(
        lti_request,
        ctx.tool_config,
        launch_data_storage=ctx.launch_data_storage,
    )
    return oidc_login.redirect(target_link_uri)


def _validate_launch(ctx: ToolContext, lti_request: FastAPIRequest) -> str:
    """Validate the id_token and cache the launch; return its launch id."""
    with ctx.http_factory() as http:
        message_launch = FastAPIMessageLaunch(
            lti_request,
            ctx.tool_config,
            launch_data_storage=ctx.launch_data_storage,
            requests_session=http,
        )
        launch_data = message_launch.get_launch_data()
        launch_id = message_launch.get_launch_id()
    logger.info(
        "LTI launch validated: launch_id=%s iss=%s deployment_id=%s sub=%s",
        launch_id,
        launch_data.get("iss"),
        launch_data.get(DEPLOYMENT_ID_CLAIM),
        launch_data.get("sub"),
    )
    return launch_id


@router.api_route("/login", methods=["GET", "POST"])
async def lti_login(request: Request):
    """
    OIDC-initiated login.

    Called by the platform when a user clicks an LTI link. Validates the
    request and redirects to the platform's auth endpoint.
    """
    ctx = get_tool_context(request)
    lti_request = await FastAPIRequest.from_starlette(request)

    try:
        response = await asyncio.to_thread(_login, ctx, lti_request)
    except (OIDCException, LtiException) as e:
        logger.warning("OIDC login rejected: %s", e)
        raise HTTPException(status_code=400, detail="Invalid login request") from e

    logger.info("OIDC login redirect -> %s", response.headers.get("location", "N/A"))
    return response


@router.post("/launch")
async def lti_launch(request: Request):
    """
    LTI resource link launch.

    Called by the platform after OIDC auth. Receives a signed JWT (id_token),
    validates it, then hands the launch id to the completion handler.
    """
    ctx = get_tool_context(request)
    lti_request = await FastAPIRequest.from_starlette(request)

    try:
        launch_id = await asyncio.to_thread(_validate_launch, ctx, lti_request)
    except LtiException as e:
        logger.warning("LTI launch rejected: %s", e)
        raise HTTPException(status_code=400, detail="Invalid launch") from e

    completion_handler = request.app.state.completion_handler
    return await asyncio.to_thread(completion_handler, ctx, launch_id)


@router.get("/keyset")
async def lti_keyset(request: Request):
    """
    Serve the tool's public JSON Web Key Set.

    The platform fetches this to verify client assertions signed by the tool.
    """
    ctx = get_tool_context(request)
    try:
        return JSONResponse(content=keyset(ctx.private_key, ctx.key_id))
    except InvalidKeyError as e:
        logger.error("cannot publish keyset: %s", e)
        raise HTTPException(status_code=500, detail="Keyset unavailable") from e
