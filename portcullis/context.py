"""Request-scoped state of a resolution cycle."""

from dataclasses import dataclass, field
from enum import Enum
from typing import cast

from .errors import AccessDenied, AuthenticationRequired
from .models import User
from .request import AuthRequest


class ResolutionState(Enum):
    """Where a resolution cycle stands."""

    START = "start"
    PROBING = "probing"
    AUTHENTICATED = "authenticated"
    CHALLENGED = "challenged"
    REJECTED = "rejected"
    FORBIDDEN = "forbidden"


TERMINAL_STATES = frozenset(
    {
        ResolutionState.AUTHENTICATED,
        ResolutionState.CHALLENGED,
        ResolutionState.REJECTED,
        ResolutionState.FORBIDDEN,
    }
)


@dataclass
class RequestContext:
    """Identity holder created once per request and passed down explicitly.

    The resolved user is only reachable once the cycle is authenticated;
    any earlier access raises :class:`AuthenticationRequired` instead of
    handing out an empty identity. A user who authenticated but may not
    use ``portal`` ends the cycle forbidden, and reading the user then
    raises :class:`AccessDenied`.
    """

    request: AuthRequest
    portal: str | None = None
    state: ResolutionState = ResolutionState.START
    mode: str | None = None
    rejected_modes: list[str] = field(default_factory=list)
    challenges: list[str] = field(default_factory=list)
    issued_session: str | None = field(default=None, repr=False)
    session_ended: bool = False
    _user: User | None = field(default=None, repr=False)

    @property
    def authenticated(self) -> bool:
        return self.state is ResolutionState.AUTHENTICATED

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def user(self) -> User:
        self.authentication_required()
        return cast(User, self._user)

    def authentication_required(self) -> None:
        """Raise unless this cycle authenticated a user allowed into the portal."""
        if self.state is ResolutionState.FORBIDDEN:
            raise AccessDenied(self.portal)
        if not self.authenticated or self._user is None:
            raise AuthenticationRequired(self.challenges)

    def permit(self, *groups: str, portal: str | None = None) -> bool:
        """Whether the user holds any of ``groups`` in ``portal``.

        ``portal`` defaults to the configured portal. Unauthenticated
        cycles are never permitted.
        """
        portal = portal or self.portal
        if not self.authenticated or self._user is None or portal is None:
            return False
        return self._user.permit(*groups, portal=portal)

    def permit_required(self, *groups: str, portal: str | None = None) -> None:
        self.authentication_required()
        if not self.permit(*groups, portal=portal):
            raise AccessDenied(portal or self.portal, groups)

    def begin(self) -> None:
        self.state = ResolutionState.PROBING

    def authenticate(self, user: User, mode: str) -> None:
        self._user = user
        self.mode = mode
        self.state = ResolutionState.AUTHENTICATED

    def forbid(self) -> None:
        """End an authenticated cycle whose user may not use the portal."""
        self.state = ResolutionState.FORBIDDEN

    def reject(self, mode: str) -> None:
        self.rejected_modes.append(mode)

    def issue_session(self, session_id: str) -> None:
        self.issued_session = session_id
        self.session_ended = False

    def end_session(self) -> None:
        self.issued_session = None
        self.session_ended = True

    def finish_unauthenticated(self, challenges: list[str]) -> None:
        self.challenges = list(challenges)
        self.state = (
            ResolutionState.REJECTED
            if self.rejected_modes
            else ResolutionState.CHALLENGED
        )
