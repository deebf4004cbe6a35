"""Form-based login mode and its responders."""

from typing import Any
from urllib.parse import urlencode

import structlog

from ..context import RequestContext, ResolutionState
from ..errors import ExtractionDeclined
from ..models import PasswordCredentials
from ..request import AuthRequest
from ..responses import Instruction, Redirect, RenderLogin
from ..sessions import SessionStore, fingerprint, forget
from .base import Mode

logger = structlog.get_logger()

DEFAULT_LOGIN_PATH = "/login"
DEFAULT_LOGOUT_PATH = "/logout"


def _local_target(url: str | None) -> str:
    # Only same-site paths; anything else goes to the application root.
    if url and url.startswith("/") and not url.startswith("//"):
        return url
    return "/"


class FormMode(Mode):
    """Reads a username and password posted to the login path."""

    key = "form"
    stores_session = True

    def __init__(self, portal: str | None = None, login_path: str = DEFAULT_LOGIN_PATH):
        super().__init__(portal)
        self.login_path = login_path

    @classmethod
    def from_config(
        cls, portal: str | None, parameters: dict[str, dict[str, Any]]
    ) -> "FormMode":
        form = parameters.get("form") or {}
        return cls(portal=portal, login_path=form.get("login_path", DEFAULT_LOGIN_PATH))

    def extract_credentials(self, request: AuthRequest) -> PasswordCredentials:
        if request.method != "POST" or request.path != self.login_path:
            raise ExtractionDeclined("not a login form submission")
        username = request.form.get("username")
        password = request.form.get("password")
        if not username or password is None:
            raise ExtractionDeclined("login form without username and password")
        return PasswordCredentials(username=username, password=password)

    def challenge(self, request: AuthRequest) -> str:
        return f'Form realm="{self.realm}", action="{self.login_path}"'

    def on_ui_failure(self, request: AuthRequest) -> Instruction:
        query = urlencode({"url": request.attempted_path})
        return Redirect(f"{self.login_path}?{query}")


class LoginRenderer:
    """Serves the login form on ``GET <login_path>``."""

    def __init__(self, login_path: str = DEFAULT_LOGIN_PATH):
        self.login_path = login_path

    def handle(self, request: AuthRequest) -> Instruction | None:
        if request.method == "GET" and request.path == self.login_path:
            return RenderLogin(self.login_path, url=request.query.get("url"))
        return None


class LoginResponder:
    """Answers a login form submission once the cycle has finished."""

    def __init__(self, login_path: str = DEFAULT_LOGIN_PATH):
        self.login_path = login_path

    def handle(
        self, request: AuthRequest, context: RequestContext
    ) -> Instruction | None:
        if request.method != "POST" or request.path != self.login_path:
            return None
        target = request.form.get("url")
        if context.authenticated:
            return Redirect(_local_target(target))
        if context.state is ResolutionState.FORBIDDEN:
            return None
        username = request.form.get("username")
        # The username field may hold a mistyped password.
        logger.info(
            "Login form rejected", user=fingerprint(username) if username else None
        )
        return RenderLogin(
            self.login_path,
            error="Login failed",
            username=username,
            url=target,
            status=401,
        )


class LogoutResponder:
    """Clears the session on ``GET <logout_path>``."""

    def __init__(
        self,
        sessions: SessionStore,
        logout_path: str = DEFAULT_LOGOUT_PATH,
        login_path: str = DEFAULT_LOGIN_PATH,
        redirect_to: str | None = None,
    ):
        self.sessions = sessions
        self.logout_path = logout_path
        self.login_path = login_path
        self.redirect_to = redirect_to

    def handle(
        self, request: AuthRequest, context: RequestContext
    ) -> Instruction | None:
        if request.method != "GET" or request.path != self.logout_path:
            return None
        forget(self.sessions, request.session_id)
        context.end_session()
        if self.redirect_to:
            return Redirect(self.redirect_to)
        return RenderLogin(self.login_path, logged_out=True)
