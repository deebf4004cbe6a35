"""Pluggable authentication for ASGI applications.

A :class:`Negotiator` picks among configured authentication modes (HTTP
Basic/Digest, CAS, form login) and resolves the credentials it finds into a
single :class:`User` through a :class:`CompositeAuthority`.
"""

from .authorities import (
    Authority,
    CasAuthority,
    CompositeAuthority,
    DirectoryAuthority,
    StaticAuthority,
)
from .context import RequestContext, ResolutionState
from .errors import (
    AccessDenied,
    AmbiguousIdentity,
    AuthenticationFailure,
    AuthenticationRequired,
    BackendUnavailable,
    ConfigurationError,
    ExtractionDeclined,
    VerificationRejected,
)
from .models import DigestCredentials, PasswordCredentials, TicketCredentials, User
from .negotiator import Negotiator
from .request import AuthRequest

__version__ = "1.0.0"

__all__ = [
    "AccessDenied",
    "AmbiguousIdentity",
    "AuthRequest",
    "AuthenticationFailure",
    "AuthenticationRequired",
    "Authority",
    "BackendUnavailable",
    "CasAuthority",
    "CompositeAuthority",
    "ConfigurationError",
    "DigestCredentials",
    "DirectoryAuthority",
    "ExtractionDeclined",
    "Negotiator",
    "PasswordCredentials",
    "RequestContext",
    "ResolutionState",
    "StaticAuthority",
    "TicketCredentials",
    "User",
    "VerificationRejected",
]
