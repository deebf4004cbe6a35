"""Tests for the request context."""

import pytest

from portcullis.context import RequestContext, ResolutionState
from portcullis.errors import AccessDenied, AuthenticationRequired
from portcullis.models import User

from .conftest import make_request


class TestRequestContext:
    """Test the per-request identity holder."""

    def test_starts_unauthenticated(self) -> None:
        """A fresh context is in START and holds no user."""
        context = RequestContext(make_request())

        assert context.state is ResolutionState.START
        assert not context.authenticated
        assert not context.finished

    def test_user_access_before_authentication_raises(self) -> None:
        """Reading the user early raises instead of returning an empty identity."""
        context = RequestContext(make_request())
        context.begin()

        with pytest.raises(AuthenticationRequired):
            _ = context.user
        with pytest.raises(AuthenticationRequired):
            context.authentication_required()

    def test_authenticate(self) -> None:
        """Authenticating records the user and the mode."""
        context = RequestContext(make_request())
        context.begin()
        context.authenticate(User("jo"), "basic")

        assert context.authenticated
        assert context.finished
        assert context.user.username == "jo"
        assert context.mode == "basic"
        context.authentication_required()

    def test_finish_without_rejections_is_challenged(self) -> None:
        """No refused credentials means the client is challenged."""
        context = RequestContext(make_request())
        context.begin()
        context.finish_unauthenticated(['Basic realm="x"'])

        assert context.state is ResolutionState.CHALLENGED
        assert context.challenges == ['Basic realm="x"']

    def test_finish_with_rejections_is_rejected(self) -> None:
        """Refused credentials end the cycle rejected."""
        context = RequestContext(make_request())
        context.begin()
        context.reject("basic")
        context.finish_unauthenticated(['Basic realm="x"'])

        assert context.state is ResolutionState.REJECTED
        assert context.rejected_modes == ["basic"]

    def test_authentication_required_carries_challenges(self) -> None:
        """The raised exception carries the cycle's challenges."""
        context = RequestContext(make_request())
        context.finish_unauthenticated(['Basic realm="x"'])

        with pytest.raises(AuthenticationRequired) as exc_info:
            context.authentication_required()
        assert exc_info.value.challenges == ['Basic realm="x"']

    def test_session_lifecycle(self) -> None:
        """Ending a session drops any session issued in the same cycle."""
        context = RequestContext(make_request())
        context.issue_session("sid")
        assert context.issued_session == "sid"

        context.end_session()
        assert context.issued_session is None
        assert context.session_ended


class TestPortalAccess:
    """Test forbidden cycles and group checks."""

    def test_forbidden_user_is_not_reachable(self) -> None:
        """A forbidden cycle is finished but reading the user raises AccessDenied."""
        context = RequestContext(make_request(), portal="ENU")
        context.begin()
        context.authenticate(User("jo"), "basic")
        context.forbid()

        assert context.state is ResolutionState.FORBIDDEN
        assert context.finished
        assert not context.authenticated
        with pytest.raises(AccessDenied) as exc_info:
            _ = context.user
        assert exc_info.value.portal == "ENU"

    def test_permit_uses_configured_portal(self) -> None:
        """Group checks default to the configured portal."""
        context = RequestContext(make_request(), portal="ENU")
        context.authenticate(User("jo").in_portal("ENU", "User"), "basic")

        assert context.permit("User")
        assert not context.permit("Admin")
        assert not context.permit("User", portal="NOTIS")
        context.permit_required("User")
        with pytest.raises(AccessDenied) as exc_info:
            context.permit_required("Admin")
        assert exc_info.value.groups == ("Admin",)

    def test_permit_requires_authentication(self) -> None:
        """Unauthenticated cycles are never permitted."""
        context = RequestContext(make_request(), portal="ENU")

        assert not context.permit()
        with pytest.raises(AuthenticationRequired):
            context.permit_required("User")
