"""Startup-time assembly of modes, authorities and responders.

Mode and authority names used in configuration map to classes through the
explicit tables below. Everything is built once, before the first request.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from .authorities.base import Authority
from .authorities.cas import CasAuthority
from .authorities.composite import CompositeAuthority
from .authorities.directory import DirectoryAuthority
from .authorities.static import StaticAuthority
from .config import PortcullisConfig
from .context import RequestContext
from .errors import ConfigurationError
from .modes.base import Mode
from .modes.cas import CasLogoutResponder, CasMode, TicketRemover
from .modes.form import FormMode, LoginRenderer, LoginResponder, LogoutResponder
from .modes.http import BasicMode, DigestMode
from .negotiator import Negotiator
from .request import AuthRequest
from .responses import Instruction
from .sessions import MemorySessionStore, SessionStore

logger = structlog.get_logger()

MODE_TYPES: dict[str, type[Mode]] = {
    BasicMode.key: BasicMode,
    DigestMode.key: DigestMode,
    CasMode.key: CasMode,
    FormMode.key: FormMode,
}

AUTHORITY_TYPES: dict[str, type[Authority]] = {
    StaticAuthority.type_name: StaticAuthority,
    DirectoryAuthority.type_name: DirectoryAuthority,
    CasAuthority.type_name: CasAuthority,
}


class PreResponder(Protocol):
    def handle(self, request: AuthRequest) -> Instruction | None: ...


class PostResponder(Protocol):
    def handle(
        self, request: AuthRequest, context: RequestContext
    ) -> Instruction | None: ...


@dataclass
class AuthStack:
    """Everything a request needs, assembled from configuration."""

    config: PortcullisConfig
    negotiator: Negotiator
    sessions: SessionStore
    before: list[PreResponder] = field(default_factory=list)
    after: list[PostResponder] = field(default_factory=list)


def build_mode(name: str, config: PortcullisConfig) -> Mode:
    try:
        mode_type = MODE_TYPES[name]
    except KeyError:
        raise ConfigurationError(f"Unknown mode {name!r}") from None
    return mode_type.from_config(config.portal, config.parameters)


def build_modes(config: PortcullisConfig) -> list[Mode]:
    names = list(config.modes)
    if config.ui_mode and config.ui_mode not in names:
        names.append(config.ui_mode)
    return [build_mode(name, config) for name in names]


def build_authority(config: PortcullisConfig, **services: Any) -> CompositeAuthority:
    """Build the composite authority.

    ``services`` supplies collaborators configuration cannot describe:
    ``directory_clients`` (authority name -> client) and ``cas_validator``.
    """
    members = []
    for entry in config.authorities:
        try:
            authority_type = AUTHORITY_TYPES[entry.type]
        except KeyError:
            raise ConfigurationError(f"Unknown authority type {entry.type!r}") from None
        params = dict(entry.params)
        if authority_type is CasAuthority:
            params = {**config.parameters_for("cas"), **params}
        members.append(authority_type.from_config(entry.name, params, **services))
    return CompositeAuthority(members)


def build(
    config: PortcullisConfig,
    sessions: SessionStore | None = None,
    **services: Any,
) -> AuthStack:
    """Assemble the negotiator and responders for ``config``."""
    if sessions is None:
        sessions = MemorySessionStore(ttl_seconds=config.session_timeout)

    modes = build_modes(config)
    by_key = {mode.key: mode for mode in modes}
    negotiator = Negotiator(
        modes,
        build_authority(config, **services),
        sessions=sessions,
        ui_mode=by_key.get(config.ui_mode) if config.ui_mode else None,
        portal=config.portal if config.check_portal else None,
    )

    stack = AuthStack(config=config, negotiator=negotiator, sessions=sessions)
    form = config.parameters_for("form")
    form_mode = by_key.get(FormMode.key)
    if isinstance(form_mode, FormMode):
        stack.before.append(LoginRenderer(form_mode.login_path))
        stack.after.append(LoginResponder(form_mode.login_path))
    # CAS logout takes precedence over the form logout page.
    if CasMode.key in by_key:
        stack.after.append(CasLogoutResponder.from_config(sessions, config.parameters))
        stack.after.append(TicketRemover())
    if isinstance(form_mode, FormMode):
        stack.after.append(
            LogoutResponder(
                sessions,
                logout_path=form.get("logout_path", "/logout"),
                login_path=form_mode.login_path,
                redirect_to=form.get("redirect_to"),
            )
        )

    logger.info(
        "Authentication stack built",
        modes=[mode.key for mode in modes],
        authorities=[a.name for a in negotiator.authority.authorities],
        ui_mode=config.ui_mode,
        portal=negotiator.portal,
    )
    return stack
