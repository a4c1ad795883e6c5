"""
Post-launch completion handler.

Runs after pylti1p3 has validated a launch: builds a connector for the
launch, upgrades it to NRPS, fetches the roster and renders it. Every
request-scoped failure is logged and turned into an opaque 500 so no
internal detail reaches the platform-initiated browser page.
"""

from __future__ import annotations

import html
import logging
from collections.abc import Callable

import requests
from starlette.responses import HTMLResponse, PlainTextResponse, Response

from lti_roster.connector import Membership, new_connector
from lti_roster.context import ToolContext
from lti_roster.errors import LtiRosterError

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[ToolContext, str], Response]


def internal_error() -> Response:
    return PlainTextResponse("Internal Server Error", status_code=500)


def render_membership(launch_id: str, membership: Membership) -> str:
    """Render the launch id, course title and members as an HTML fragment."""
    title = membership.context.title or membership.context.label or membership.context.id
    items = "".join(
        f"<li>{html.escape(member.display_name)}"
        f" ({html.escape(', '.join(member.role_names))})</li>"
        for member in membership.members
    )
    return (
        "<p>Launch successful!</p>\n"
        f"<p>Launch ID from request: {html.escape(launch_id)}</p>\n"
        f"<p>Course title: {html.escape(title)}</p>\n"
        f"<p>Members:</p><ul>{items}</ul>"
    )


def roster_page(ctx: ToolContext, launch_id: str) -> Response:
    """Fetch the launch's course roster via NRPS and render it."""
    with ctx.http_factory() as http:
        return _roster_page(ctx, launch_id, http)


def _roster_page(ctx: ToolContext, launch_id: str, http: requests.Session) -> Response:
    # Create a connector, which is necessary to access LTI services
    try:
        conn = new_connector(ctx.store, ctx.sessions, launch_id, key_id=ctx.key_id, http=http)
        conn.set_signing_key(ctx.private_key)
    except LtiRosterError as e:
        logger.warning("cannot create connector for launch %s: %s", launch_id, e)
        return internal_error()

    # Upgrade the connector to access Names and Role Provisioning Services
    try:
        nrps = conn.upgrade_nrps()
    except LtiRosterError as e:
        logger.warning("cannot upgrade connector for NRPS (launch %s): %s", launch_id, e)
        return internal_error()

    try:
        membership = nrps.get_membership()
    except LtiRosterError as e:
        logger.warning("cannot get membership for launch %s: %s", launch_id, e)
        return internal_error()

    return HTMLResponse(content=render_membership(launch_id, membership))
