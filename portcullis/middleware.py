"""Starlette integration: runs a resolution cycle for every request."""

import html
from collections.abc import Callable
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import (
    HTMLResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)

from .context import RequestContext, ResolutionState
from .errors import AccessDenied, AuthenticationRequired
from .registry import AuthStack
from .request import AuthRequest
from .responses import Challenge, Instruction, Message, Redirect, RenderLogin
from .sessions import SESSION_COOKIE

logger = structlog.get_logger()

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def render_login_page(instruction: RenderLogin) -> str:
    """Minimal login form; applications usually pass their own renderer."""
    notice = ""
    if instruction.error:
        notice = f'<p class="error">{html.escape(instruction.error)}</p>'
    elif instruction.logged_out:
        notice = "<p>You have been logged out.</p>"
    url_field = ""
    if instruction.url:
        url_field = f'<input type="hidden" name="url" value="{html.escape(instruction.url)}">'
    return (
        "<!DOCTYPE html><html><head><title>Log in</title></head><body>"
        f"{notice}"
        f'<form method="post" action="{html.escape(instruction.path)}">'
        '<label>Username <input type="text" name="username" '
        f'value="{html.escape(instruction.username or "")}"></label>'
        '<label>Password <input type="password" name="password"></label>'
        f"{url_field}"
        '<button type="submit">Log in</button></form></body></html>'
    )


async def to_auth_request(request: Request) -> AuthRequest:
    """Copy what the modes need out of a Starlette request."""
    form: dict[str, str] = {}
    content_type = request.headers.get("content-type", "")
    if request.method == "POST" and content_type.startswith(FORM_CONTENT_TYPES):
        submitted = await request.form()
        form = {k: v for k, v in submitted.items() if isinstance(v, str)}
    return AuthRequest(
        method=request.method,
        url=str(request.url),
        headers=dict(request.headers),
        form=form,
        session_id=request.cookies.get(SESSION_COOKIE),
    )


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Authenticates every request outside the unprotected paths.

    The request's :class:`RequestContext` is exposed as
    ``request.state.auth`` and the resolved user as ``request.state.user``.
    With ``require_authentication=False`` unauthenticated requests reach the
    application, which can call ``request.state.auth.authentication_required()``
    to demand a login.
    """

    def __init__(
        self,
        app: Any,
        stack: AuthStack,
        require_authentication: bool = True,
        login_page: Callable[[RenderLogin], str] = render_login_page,
        secure_cookies: bool = True,
    ):
        super().__init__(app)
        self.stack = stack
        self.require_authentication = require_authentication
        self.login_page = login_page
        self.secure_cookies = secure_cookies

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        if request.url.path in self.stack.config.unprotected_paths:
            return await call_next(request)

        auth_request = await to_auth_request(request)

        for pre in self.stack.before:
            instruction = pre.handle(auth_request)
            if instruction is not None:
                return self.render(instruction)

        context = await self.stack.negotiator.resolve(auth_request)
        request.state.auth = context

        for post in self.stack.after:
            instruction = post.handle(auth_request, context)
            if instruction is not None:
                return self.finish(self.render(instruction), context)

        if context.state is ResolutionState.FORBIDDEN:
            return self.finish(self.forbidden(), context)

        if not context.authenticated:
            logger.warning(
                "Authentication failed",
                path=auth_request.path,
                state=context.state.value,
                has_auth_header=auth_request.header("authorization") is not None,
            )
            if self.require_authentication:
                return self.finish(self.unauthenticated(auth_request, context), context)
        else:
            request.state.user = context.user

        try:
            response = await call_next(request)
        except AuthenticationRequired as e:
            challenges = e.challenges or self.stack.negotiator.challenges(auth_request)
            context.challenges = challenges
            response = self.unauthenticated(auth_request, context)
        except AccessDenied as e:
            logger.info(
                "Access denied by application", portal=e.portal, groups=list(e.groups)
            )
            response = self.forbidden()
        return self.finish(response, context)

    def forbidden(self) -> Response:
        return self.render(Message("Access denied", status=403))

    def unauthenticated(self, request: AuthRequest, context: RequestContext) -> Response:
        ui_mode = self.stack.negotiator.ui_mode
        if request.interactive and ui_mode is not None:
            instruction = ui_mode.on_ui_failure(request)
            if instruction is not None:
                return self.render(instruction)
        challenges = context.challenges or self.stack.negotiator.challenges(request)
        return self.render(Challenge(challenges))

    def render(self, instruction: Instruction) -> Response:
        if isinstance(instruction, Challenge):
            response: Response = PlainTextResponse(
                "Authentication required", status_code=instruction.status
            )
            # One header per challenge so clients can pick a scheme.
            for challenge in instruction.challenges:
                response.headers.append("WWW-Authenticate", challenge)
            return response
        if isinstance(instruction, Redirect):
            return RedirectResponse(instruction.location, status_code=instruction.status)
        if isinstance(instruction, RenderLogin):
            return HTMLResponse(self.login_page(instruction), status_code=instruction.status)
        if isinstance(instruction, Message):
            return PlainTextResponse(
                instruction.body,
                status_code=instruction.status,
                headers=instruction.headers,
            )
        raise TypeError(f"Unknown response instruction {instruction!r}")

    def finish(self, response: Response, context: RequestContext) -> Response:
        if context.issued_session:
            response.set_cookie(
                SESSION_COOKIE,
                context.issued_session,
                httponly=True,
                samesite="lax",
                secure=self.secure_cookies,
            )
        elif context.session_ended:
            response.delete_cookie(SESSION_COOKIE)
        return response
