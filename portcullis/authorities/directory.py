"""Authority backed by an LDAP-like directory.

The wire protocol is not implemented here. The authority talks to any
object satisfying :class:`DirectoryClient`, so deployments can plug in
their directory library of choice.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import structlog

from ..errors import BackendUnavailable, ConfigurationError, DirectoryError
from ..models import Credentials, Criteria, PasswordCredentials, User
from .base import Authority

logger = structlog.get_logger()

DirectoryEntry = Mapping[str, Sequence[str]]


class DirectoryClient(Protocol):
    """Lookup contract for directory backends."""

    async def bind(self, username: str, password: str) -> bool:
        """Return True if the directory accepts the password for ``username``."""
        ...

    async def search(self, criteria: Mapping[str, str]) -> list[DirectoryEntry]:
        """Return entries whose attributes equal every criterion."""
        ...


class DirectoryAuthority(Authority):
    """Verifies passwords by binding and builds users from directory entries.

    Every entry attribute is copied onto :attr:`User.attributes`, keeping
    all values. Entry attributes can be renamed with ``attribute_map``
    (directory name -> user attribute name), e.g. ``{"givenName":
    "first_name"}``.
    """

    type_name = "directory"
    credential_kinds = frozenset({PasswordCredentials.kind})
    can_enumerate_users = True

    def __init__(
        self,
        client: DirectoryClient,
        name: str | None = None,
        username_attribute: str = "uid",
        attribute_map: Mapping[str, str] | None = None,
    ):
        super().__init__(name)
        self.client = client
        self.username_attribute = username_attribute
        self.attribute_map = dict(attribute_map or {})

    @classmethod
    def from_config(
        cls, name: str, params: dict[str, Any], **services: Any
    ) -> "DirectoryAuthority":
        client = services.get("directory_clients", {}).get(name)
        if client is None:
            raise ConfigurationError(f"No directory client provided for {name!r}")
        return cls(
            client,
            name=name,
            username_attribute=params.get("username_attribute", "uid"),
            attribute_map=params.get("attribute_map"),
        )

    def _search_criteria(self, criteria: Criteria) -> dict[str, str]:
        if isinstance(criteria, str):
            criteria = {"username": criteria}
        reverse = {v: k for k, v in self.attribute_map.items()}
        translated = {}
        for key, value in criteria.items():
            if key == "username":
                translated[self.username_attribute] = value
            else:
                translated[reverse.get(key, key)] = value
        return translated

    def _to_user(self, entry: DirectoryEntry) -> User | None:
        usernames = entry.get(self.username_attribute) or []
        if len(usernames) != 1:
            logger.warning(
                "Directory entry without a single username",
                authority=self.name,
                values=len(usernames),
            )
            return None
        attributes = {
            self.attribute_map.get(k, k): list(v)
            for k, v in entry.items()
            if k != self.username_attribute
        }
        user = User(usernames[0], attributes=attributes, authority=self.name)
        return user.with_extension("directory_attributes", dict(entry))

    async def _search(self, criteria: Criteria) -> list[DirectoryEntry]:
        try:
            return await self.client.search(self._search_criteria(criteria))
        except (DirectoryError, OSError, TimeoutError) as e:
            logger.error(
                "Directory search failed",
                authority=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise BackendUnavailable("directory search failed", self.name) from e

    async def verify_credentials(self, credentials: Credentials) -> User | None:
        if not isinstance(credentials, PasswordCredentials):
            return None
        # A simple bind with an empty password is an anonymous bind and succeeds.
        if not credentials.password.strip():
            logger.info("Blank password refused", authority=self.name)
            return None
        try:
            accepted = await self.client.bind(credentials.username, credentials.password)
        except (DirectoryError, OSError, TimeoutError) as e:
            logger.error(
                "Directory bind failed",
                authority=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise BackendUnavailable("directory bind failed", self.name) from e
        if not accepted:
            return None

        entries = await self._search(credentials.username)
        users = [u for u in (self._to_user(e) for e in entries) if u is not None]
        if len(users) != 1:
            logger.warning(
                "Bound user not found exactly once in directory",
                authority=self.name,
                matches=len(users),
            )
            return None
        return users[0]

    async def find_users(self, criteria: Criteria) -> set[User]:
        entries = await self._search(criteria)
        return {u for u in (self._to_user(e) for e in entries) if u is not None}
