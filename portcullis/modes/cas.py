"""CAS single sign-on mode and its responders."""

import xml.etree.ElementTree as ET
from typing import Any
from urllib.parse import urlencode

import structlog

from ..context import RequestContext
from ..errors import ConfigurationError, ExtractionDeclined
from ..models import TicketCredentials
from ..request import AuthRequest, without_query_param
from ..responses import Instruction, Message, Redirect
from ..sessions import SessionStore, fingerprint, forget, forget_ticket
from .base import Mode

logger = structlog.get_logger()

SAML_PROTOCOL_NS = "{urn:oasis:names:tc:SAML:2.0:protocol}"


def service_url(request: AuthRequest) -> str:
    """The URL CAS should send the user back to, without any ticket."""
    return without_query_param(request.url, "ticket")


def _with_slash(url: str) -> str:
    return url if url.endswith("/") else url + "/"


class CasMode(Mode):
    """Authenticates requests carrying a CAS service ticket."""

    key = "cas"
    stores_session = True

    def __init__(
        self,
        base_url: str,
        portal: str | None = None,
        login_url: str | None = None,
    ):
        super().__init__(portal)
        self.base_url = base_url
        self.login_url = login_url or _with_slash(base_url) + "login"

    @classmethod
    def from_config(
        cls, portal: str | None, parameters: dict[str, dict[str, Any]]
    ) -> "CasMode":
        cas = parameters.get("cas") or {}
        if not cas.get("base_url"):
            raise ConfigurationError("base_url parameter is required for CAS")
        return cls(cas["base_url"], portal=portal, login_url=cas.get("login_url"))

    def extract_credentials(self, request: AuthRequest) -> TicketCredentials:
        ticket = request.query.get("ticket")
        if not ticket:
            raise ExtractionDeclined("no CAS ticket")
        return TicketCredentials(ticket=ticket, service=service_url(request))

    def challenge(self, request: AuthRequest) -> str:
        return f'CAS realm="{self.realm}", login_url="{self.login_url}"'

    def on_ui_failure(self, request: AuthRequest) -> Instruction:
        query = urlencode({"service": service_url(request)})
        return Redirect(f"{self.login_url}?{query}")


def session_index(logout_request: str) -> str | None:
    """Ticket named by a CAS single-logout ``LogoutRequest`` document."""
    try:
        root = ET.fromstring(logout_request)
    except ET.ParseError:
        return None
    index = root.findtext(f"{SAML_PROTOCOL_NS}SessionIndex")
    return index.strip() if index and index.strip() else None


class CasLogoutResponder:
    """Handles CAS logout: local logout redirects and single-logout callbacks."""

    def __init__(
        self,
        sessions: SessionStore,
        logout_url: str,
        logout_path: str = "/logout",
    ):
        self.sessions = sessions
        self.logout_url = logout_url
        self.logout_path = logout_path

    @classmethod
    def from_config(
        cls, sessions: SessionStore, parameters: dict[str, dict[str, Any]]
    ) -> "CasLogoutResponder":
        cas = parameters.get("cas") or {}
        if not (cas.get("logout_url") or cas.get("base_url")):
            raise ConfigurationError("base_url parameter is required for CAS")
        logout_url = cas.get("logout_url") or _with_slash(cas["base_url"]) + "logout"
        logout_path = (parameters.get("form") or {}).get("logout_path", "/logout")
        return cls(sessions, logout_url, logout_path)

    def invalidate(self, ticket: str) -> None:
        """Drop the session established with ``ticket``; safe to repeat."""
        forget_ticket(self.sessions, ticket)

    def handle(
        self, request: AuthRequest, context: RequestContext
    ) -> Instruction | None:
        if request.method == "POST" and "logoutRequest" in request.form:
            ticket = session_index(request.form["logoutRequest"])
            if ticket is None:
                logger.warning("Malformed CAS logout request")
                return Message("Malformed logout request", status=400)
            self.invalidate(ticket)
            logger.info("CAS single logout", ticket=fingerprint(ticket))
            return Message("")
        if request.method == "GET" and request.path == self.logout_path:
            forget(self.sessions, request.session_id)
            context.end_session()
            return Redirect(self.logout_url)
        return None


class TicketRemover:
    """Redirects authenticated requests to the same URL minus the ticket.

    Keeps service tickets out of browser history, logs and Referer headers.
    """

    def handle(
        self, request: AuthRequest, context: RequestContext
    ) -> Instruction | None:
        if context.authenticated and "ticket" in request.query:
            return Redirect(service_url(request), status=301)
        return None
