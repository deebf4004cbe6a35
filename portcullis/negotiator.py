"""Mode negotiation: one resolution cycle per request."""

from collections.abc import Iterable

import structlog

from .authorities.composite import CompositeAuthority
from .context import RequestContext
from .errors import AuthenticationFailure, ConfigurationError, ExtractionDeclined
from .models import TicketCredentials
from .modes.base import Mode
from .request import AuthRequest
from .sessions import (
    SessionStore,
    fingerprint,
    new_session_id,
    recall_session,
    remember,
)

logger = structlog.get_logger()

SESSION_MODE = "session"


class Negotiator:
    """Chooses the mode that handles a request and resolves its user.

    Modes are asked in configured order whether they can read credentials
    from the request. The first one that can has its credentials verified;
    if verification fails the remaining modes get their turn. A request no
    mode could read ends challenged with every mode's challenge; a request
    whose credentials were all refused ends rejected.

    With ``portal`` set, an authenticated user who may not access that
    portal ends the cycle forbidden and no session is issued.
    """

    def __init__(
        self,
        modes: Iterable[Mode],
        authority: CompositeAuthority,
        sessions: SessionStore | None = None,
        ui_mode: Mode | None = None,
        portal: str | None = None,
    ):
        self.modes: tuple[Mode, ...] = tuple(modes)
        if not self.modes:
            raise ConfigurationError("At least one mode must be configured")
        keys = [mode.key for mode in self.modes]
        if len(set(keys)) != len(keys):
            raise ConfigurationError(f"Duplicate modes configured: {keys}")
        self.authority = authority
        self.sessions = sessions
        self.ui_mode = ui_mode
        self.portal = portal

    def challenges(self, request: AuthRequest) -> list[str]:
        """Every mode's challenge, in configured order."""
        return [mode.challenge(request) for mode in self.modes]

    async def resolve(self, request: AuthRequest) -> RequestContext:
        context = RequestContext(request, portal=self.portal)
        context.begin()

        if self._restore_session(request, context):
            self._check_portal(context)
            return context

        for mode in self.modes:
            try:
                credentials = mode.extract_credentials(request)
            except ExtractionDeclined as e:
                logger.debug("Mode declined request", mode=mode.key, reason=str(e))
                continue

            try:
                user = await self.authority.verify_credentials(credentials)
            except AuthenticationFailure as e:
                logger.info(
                    "Credentials rejected",
                    mode=mode.key,
                    path=request.path,
                    error_type=type(e).__name__,
                )
                context.reject(mode.key)
                continue

            context.authenticate(user, mode.key)
            if not self._check_portal(context):
                return context
            if mode.stores_session and self.sessions is not None:
                session_id = new_session_id()
                ticket = (
                    credentials.ticket
                    if isinstance(credentials, TicketCredentials)
                    else None
                )
                remember(self.sessions, session_id, user, ticket=ticket)
                context.issue_session(session_id)
            logger.info(
                "Authentication successful",
                user=user.username,
                mode=mode.key,
                path=request.path,
            )
            return context

        context.finish_unauthenticated(self.challenges(request))
        logger.info(
            "Authentication incomplete",
            state=context.state.value,
            rejected_modes=context.rejected_modes,
            path=request.path,
        )
        return context

    def _restore_session(self, request: AuthRequest, context: RequestContext) -> bool:
        if self.sessions is None or not request.session_id:
            return False
        session = recall_session(self.sessions, request.session_id)
        if session is None:
            return False
        user = session.user
        # Rewriting the entries restarts their expiry window.
        remember(self.sessions, request.session_id, user, ticket=session.ticket)
        context.authenticate(user, SESSION_MODE)
        logger.debug(
            "Session restored",
            session=fingerprint(request.session_id),
            user=user.username,
        )
        return True

    def _check_portal(self, context: RequestContext) -> bool:
        user = context.user
        if self.portal is None or user.may_access(self.portal):
            return True
        context.forbid()
        logger.warning(
            "User may not access portal",
            user=user.username,
            portal=self.portal,
            mode=context.mode,
        )
        return False
