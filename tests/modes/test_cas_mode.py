"""Tests for the CAS mode and its responders."""

from urllib.parse import parse_qs, urlsplit

import pytest

from portcullis.context import RequestContext
from portcullis.errors import ConfigurationError, ExtractionDeclined
from portcullis.models import TicketCredentials, User
from portcullis.modes.cas import (
    CasLogoutResponder,
    CasMode,
    TicketRemover,
    service_url,
    session_index,
)
from portcullis.responses import Message, Redirect
from portcullis.sessions import MemorySessionStore, recall, remember, ticket_key

from ..conftest import make_request

CAS_BASE = "https://cas.example.org/cas"


def logout_request(ticket: str) -> str:
    return (
        '<samlp:LogoutRequest xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol" '
        'xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion" ID="LR-1" Version="2.0">'
        "<saml:NameID>@NOT_USED@</saml:NameID>"
        f"<samlp:SessionIndex>{ticket}</samlp:SessionIndex>"
        "</samlp:LogoutRequest>"
    )


class TestCasMode:
    """Test CAS ticket extraction and challenges."""

    def test_extracts_ticket(self) -> None:
        """The ticket comes from the query; the service URL omits it."""
        request = make_request("https://app.example.org/page?ticket=ST-1&x=1")

        credentials = CasMode(CAS_BASE).extract_credentials(request)

        assert credentials == TicketCredentials(
            ticket="ST-1", service="https://app.example.org/page?x=1"
        )

    def test_declines_without_ticket(self) -> None:
        """Requests without a ticket are declined."""
        with pytest.raises(ExtractionDeclined):
            CasMode(CAS_BASE).extract_credentials(make_request("https://app/?ticket="))

    def test_login_url_defaults_to_base(self) -> None:
        """The login URL defaults to <base>/login."""
        assert CasMode(CAS_BASE).login_url == "https://cas.example.org/cas/login"
        assert CasMode(CAS_BASE + "/").login_url == "https://cas.example.org/cas/login"
        assert CasMode(CAS_BASE, login_url="https://sso/login").login_url == "https://sso/login"

    def test_challenge(self) -> None:
        """The challenge names the realm and login URL."""
        challenge = CasMode(CAS_BASE, portal="ENU").challenge(make_request())

        assert challenge == 'CAS realm="ENU", login_url="https://cas.example.org/cas/login"'

    def test_ui_failure_redirects_to_login(self) -> None:
        """Browsers are sent to CAS with the service URL."""
        request = make_request("https://app.example.org/page?ticket=ST-old")

        instruction = CasMode(CAS_BASE).on_ui_failure(request)

        assert isinstance(instruction, Redirect)
        parts = urlsplit(instruction.location)
        assert parts.path == "/cas/login"
        assert parse_qs(parts.query) == {"service": ["https://app.example.org/page"]}

    def test_from_config(self) -> None:
        """Configuration needs the CAS base URL."""
        mode = CasMode.from_config("ENU", {"cas": {"base_url": CAS_BASE}})

        assert mode.base_url == CAS_BASE
        assert mode.realm == "ENU"
        with pytest.raises(ConfigurationError):
            CasMode.from_config(None, {})

    def test_service_url(self) -> None:
        """Only the ticket parameter is stripped."""
        assert service_url(make_request("https://app/p?ticket=T&a=b")) == "https://app/p?a=b"


class TestCasLogoutResponder:
    """Test CAS logout handling."""

    def setup_method(self) -> None:
        """Setup a store holding a session established with ticket T."""
        self.sessions = MemorySessionStore()
        remember(self.sessions, "sid", User("jo"), ticket="T")
        self.responder = CasLogoutResponder(self.sessions, f"{CAS_BASE}/logout")

    def test_single_logout_invalidates_session(self) -> None:
        """A back-channel logout removes the session for its ticket."""
        request = make_request(
            "https://app/", method="POST", form={"logoutRequest": logout_request("T")}
        )

        instruction = self.responder.handle(request, RequestContext(request))

        assert instruction == Message("")
        assert recall(self.sessions, "sid") is None
        assert self.sessions.get(ticket_key("T")) is None

    def test_invalidate_twice(self) -> None:
        """Invalidating the same ticket again is harmless."""
        self.responder.invalidate("T")
        self.responder.invalidate("T")
        self.responder.invalidate("never-issued")

        assert recall(self.sessions, "sid") is None
        assert self.sessions.size() == 0

    def test_malformed_logout_request(self) -> None:
        """A logout request without a session index is refused."""
        request = make_request("https://app/", method="POST", form={"logoutRequest": "<x"})

        instruction = self.responder.handle(request, RequestContext(request))

        assert isinstance(instruction, Message)
        assert instruction.status == 400
        assert recall(self.sessions, "sid") is not None

    def test_local_logout_redirects_to_cas(self) -> None:
        """GET /logout ends the local session and hands over to CAS."""
        request = make_request("https://app/logout", session_id="sid")
        context = RequestContext(request)

        instruction = self.responder.handle(request, context)

        assert instruction == Redirect(f"{CAS_BASE}/logout")
        assert context.session_ended
        assert recall(self.sessions, "sid") is None

    def test_other_requests_pass(self) -> None:
        """Unrelated requests are left alone."""
        request = make_request("https://app/page")

        assert self.responder.handle(request, RequestContext(request)) is None

    def test_from_config(self) -> None:
        """The logout URL defaults to <base>/logout."""
        responder = CasLogoutResponder.from_config(self.sessions, {"cas": {"base_url": CAS_BASE}})
        explicit = CasLogoutResponder.from_config(
            self.sessions,
            {"cas": {"base_url": CAS_BASE, "logout_url": "https://sso/bye"}, "form": {"logout_path": "/bye"}},
        )

        assert responder.logout_url == f"{CAS_BASE}/logout"
        assert explicit.logout_url == "https://sso/bye"
        assert explicit.logout_path == "/bye"


def test_session_index() -> None:
    """The session index names the ticket to invalidate."""
    assert session_index(logout_request("ST-42")) == "ST-42"
    assert session_index("<samlp:LogoutRequest/>") is None
    assert session_index("not xml <") is None


class TestTicketRemover:
    """Test removal of tickets from authenticated URLs."""

    def test_redirects_authenticated_ticket_requests(self) -> None:
        """Authenticated requests with a ticket are redirected without it."""
        request = make_request("https://app/page?ticket=ST-1&a=b")
        context = RequestContext(request)
        context.authenticate(User("jo"), "cas")

        instruction = TicketRemover().handle(request, context)

        assert instruction == Redirect("https://app/page?a=b", status=301)

    def test_leaves_unauthenticated_requests(self) -> None:
        """Failed ticket requests are not redirected."""
        request = make_request("https://app/page?ticket=ST-1")

        assert TicketRemover().handle(request, RequestContext(request)) is None

    def test_leaves_requests_without_ticket(self) -> None:
        """Nothing to remove, nothing to do."""
        request = make_request("https://app/page")
        context = RequestContext(request)
        context.authenticate(User("jo"), "session")

        assert TicketRemover().handle(request, context) is None
