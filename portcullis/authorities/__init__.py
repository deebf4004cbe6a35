"""Identity backends."""

from .base import Authority
from .cas import CasAuthority, CasTicketValidator, CasValidation
from .composite import CompositeAuthority
from .directory import DirectoryAuthority, DirectoryClient
from .static import StaticAuthority

__all__ = [
    "Authority",
    "CasAuthority",
    "CasTicketValidator",
    "CasValidation",
    "CompositeAuthority",
    "DirectoryAuthority",
    "DirectoryClient",
    "StaticAuthority",
]
