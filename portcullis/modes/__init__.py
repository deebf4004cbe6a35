"""Authentication modes."""

from .base import DEFAULT_REALM, Mode, Rfc2617Mode, challenge_for, parse_authorization
from .cas import CasLogoutResponder, CasMode, TicketRemover, service_url
from .form import FormMode, LoginRenderer, LoginResponder, LogoutResponder
from .http import BasicMode, DigestMode

__all__ = [
    "DEFAULT_REALM",
    "BasicMode",
    "CasLogoutResponder",
    "CasMode",
    "DigestMode",
    "FormMode",
    "LoginRenderer",
    "LoginResponder",
    "LogoutResponder",
    "Mode",
    "Rfc2617Mode",
    "TicketRemover",
    "challenge_for",
    "parse_authorization",
    "service_url",
]
