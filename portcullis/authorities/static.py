"""In-memory authority loaded from YAML, for tests and small deployments."""

import dataclasses
import hashlib
import hmac
from pathlib import Path
from typing import IO, Any

import structlog
import yaml

from ..errors import ConfigurationError
from ..models import (
    Credentials,
    Criteria,
    DigestCredentials,
    PasswordCredentials,
    User,
)
from .base import Authority

logger = structlog.get_logger()


def _md5(value: str) -> str:
    return hashlib.md5(value.encode()).hexdigest()


def expected_digest_response(credentials: DigestCredentials, password: str) -> str:
    """Compute the RFC 2617 response for a known password."""
    ha1 = _md5(f"{credentials.username}:{credentials.realm}:{password}")
    ha2 = _md5(f"{credentials.method}:{credentials.uri}")
    if credentials.qop in ("auth", "auth-int"):
        return _md5(
            f"{ha1}:{credentials.nonce}:{credentials.nc}:"
            f"{credentials.cnonce}:{credentials.qop}:{ha2}"
        )
    return _md5(f"{ha1}:{credentials.nonce}:{ha2}")


def _portal_entries(username: str, portals: Any) -> list[tuple[str, list[str]]]:
    """Read ``[SQLSubmit, {ENU: [User, Admin]}]`` into (portal, groups) pairs."""
    if not isinstance(portals, list):
        raise ConfigurationError(f"portals of static user {username!r} must be a list")
    entries = []
    for entry in portals:
        if isinstance(entry, str):
            entries.append((entry, []))
        elif isinstance(entry, dict) and len(entry) == 1:
            portal, groups = next(iter(entry.items()))
            groups = groups or []
            if not isinstance(groups, list) or not all(isinstance(g, str) for g in groups):
                raise ConfigurationError(
                    f"Groups of portal {portal!r} for static user {username!r} must be names"
                )
            entries.append((str(portal), groups))
        else:
            raise ConfigurationError(f"Invalid portal entry for static user {username!r}")
    return entries


class StaticAuthority(Authority):
    """Authority whose users and passwords are held in memory.

    Example document::

        users:
          jo:
            password: secret
            first_name: Jo
            mail: [jo@example.org]
            portals:
              - SQLSubmit
              - ENU: [User, Admin]

    With ``portal`` set, the authority vetoes users it knows who lack that
    portal, whichever authority verified their credentials.
    """

    type_name = "static"
    credential_kinds = frozenset({PasswordCredentials.kind, DigestCredentials.kind})
    can_enumerate_users = True

    def __init__(self, name: str | None = None, portal: str | None = None):
        super().__init__(name)
        self.portal = portal
        self._users: dict[str, User] = {}
        self._passwords: dict[str, str] = {}

    def user(self, username: str, **attributes: Any) -> User:
        """Add or extend a user record."""
        existing = self._users.get(username) or User(username, authority=self.name)
        user = existing.with_attributes(**attributes) if attributes else existing
        self._users[username] = user
        return user

    def valid_credentials(self, username: str, password: str) -> User:
        """Register ``password`` as valid for ``username``."""
        self._passwords[username] = password
        return self.user(username)

    def load(self, stream: IO[str] | str) -> "StaticAuthority":
        """Load users from a YAML document."""
        try:
            content = yaml.safe_load(stream)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid static authority document: {e}") from e
        if content is not None and not isinstance(content, dict):
            raise ConfigurationError("Static authority document must be a mapping")
        return self.load_users((content or {}).get("users") or {})

    def load_users(self, users: dict[str, Any]) -> "StaticAuthority":
        if not isinstance(users, dict):
            raise ConfigurationError("Static users must be a mapping of username to record")
        for username, config in users.items():
            if config is not None and not isinstance(config, dict):
                raise ConfigurationError(f"Static user {username!r} must be a mapping")
            config = dict(config or {})
            password = config.pop("password", None)
            portals = config.pop("portals", None) or []
            attributes = {
                k: v if isinstance(v, list) else str(v) for k, v in config.items()
            }
            user = self.user(str(username), **attributes)
            for portal, groups in _portal_entries(str(username), portals):
                user = user.in_portal(portal, *groups)
            self._users[user.username] = user
            if password is not None:
                self.valid_credentials(str(username), str(password))
        logger.info("Static users loaded", authority=self.name, count=len(users))
        return self

    @classmethod
    def from_file(
        cls, filename: str | Path, name: str | None = None, portal: str | None = None
    ) -> "StaticAuthority":
        path = Path(filename)
        if not path.exists():
            raise ConfigurationError(f"Static users file not found: {path}")
        with open(path) as f:
            return cls(name, portal=portal).load(f)

    @classmethod
    def from_config(
        cls, name: str, params: dict[str, Any], **services: Any
    ) -> "StaticAuthority":
        portal = params.get("portal")
        portal = str(portal) if portal is not None else None
        if "file" in params:
            return cls.from_file(params["file"], name=name, portal=portal)
        return cls(name, portal=portal).load_users(params.get("users") or {})

    async def verify_credentials(self, credentials: Credentials) -> User | None:
        if isinstance(credentials, PasswordCredentials):
            known = self._passwords.get(credentials.username)
            if known is None or not hmac.compare_digest(known, credentials.password):
                return None
            return self._users[credentials.username]
        if isinstance(credentials, DigestCredentials):
            known = self._passwords.get(credentials.username)
            if known is None:
                return None
            expected = expected_digest_response(credentials, known)
            if not hmac.compare_digest(expected, credentials.response):
                return None
            return self._users[credentials.username]
        return None

    async def find_users(self, criteria: Criteria) -> set[User]:
        return {user for user in self._users.values() if user.matches(criteria)}

    async def amplify(self, user: User) -> User:
        base = self._users.get(user.username)
        if base is None:
            return user
        return user.merged(dataclasses.replace(base, authority=None))

    async def veto(self, user: User) -> bool:
        known = self._users.get(user.username)
        if self.portal is None or known is None:
            return False
        if known.may_access(self.portal):
            return False
        logger.info(
            "Static user lacks portal",
            authority=self.name,
            username=user.username,
            portal=self.portal,
        )
        return True

    def clear(self) -> "StaticAuthority":
        self._users.clear()
        self._passwords.clear()
        return self
