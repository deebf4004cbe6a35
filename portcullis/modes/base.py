"""Mode base class and RFC 2617 helpers."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from ..errors import ExtractionDeclined
from ..models import Credentials
from ..request import AuthRequest
from ..responses import Instruction

DEFAULT_REALM = "portcullis"


class Mode(ABC):
    """An authentication scheme.

    Modes are configured once and shared by all requests; anything a mode
    learns about a request goes into the request's context, never onto the
    mode.
    """

    key: ClassVar[str]
    # Interactive modes keep the user in a session after a successful login.
    stores_session: ClassVar[bool] = False

    def __init__(self, portal: str | None = None):
        self.portal = portal

    @property
    def realm(self) -> str:
        return self.portal or DEFAULT_REALM

    @abstractmethod
    def extract_credentials(self, request: AuthRequest) -> Credentials:
        """Read this mode's credentials from ``request``.

        Raises:
            ExtractionDeclined: the request carries no usable credentials
                for this mode
        """

    @abstractmethod
    def challenge(self, request: AuthRequest) -> str:
        """How a client should authenticate with this mode."""

    def on_ui_failure(self, request: AuthRequest) -> Instruction | None:
        """Response for an interactive client that must log in, if any."""
        return None

    @classmethod
    def from_config(
        cls, portal: str | None, parameters: dict[str, dict[str, Any]]
    ) -> "Mode":
        return cls(portal=portal)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} realm={self.realm!r}>"


def challenge_for(scheme: str, realm: str) -> str:
    return f'{scheme} realm="{realm}"'


def parse_authorization(header: str | None, scheme: str) -> str:
    """Return the parameters of an Authorization header for ``scheme``.

    Raises:
        ExtractionDeclined: header absent, empty, or for another scheme
    """
    if not header:
        raise ExtractionDeclined("no authorization header")
    found, _, params = header.strip().partition(" ")
    if found.lower() != scheme.lower():
        raise ExtractionDeclined(f"authorization scheme is {found!r}")
    params = params.strip()
    if not params:
        raise ExtractionDeclined(f"empty {scheme} authorization")
    return params


def parse_auth_params(params: str) -> dict[str, str]:
    """Split ``a="x", b=y`` into a dict, honouring quoted commas.

    Raises:
        ExtractionDeclined: a parameter is not ``name=value``
    """
    result: dict[str, str] = {}
    parts: list[str] = []
    current: list[str] = []
    quoted = False
    escaped = False
    for ch in params:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\" and quoted:
            escaped = True
        elif ch == '"':
            quoted = not quoted
            current.append(ch)
        elif ch == "," and not quoted:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    if quoted:
        raise ExtractionDeclined("unterminated quoted string")
    parts.append("".join(current))

    for part in parts:
        part = part.strip()
        if not part:
            continue
        name, sep, value = part.partition("=")
        if not sep or not name.strip():
            raise ExtractionDeclined(f"malformed parameter {part!r}")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        result[name.strip().lower()] = value
    return result


class Rfc2617Mode(Mode):
    """Shared behaviour of the HTTP Basic and Digest modes."""

    scheme: ClassVar[str]

    def challenge(self, request: AuthRequest) -> str:
        return challenge_for(self.scheme, self.realm)

    def authorization(self, request: AuthRequest) -> str:
        return parse_authorization(request.header("authorization"), self.scheme)
