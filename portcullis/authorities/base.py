"""Authority base class."""

from typing import Any, ClassVar

from ..models import Credentials, Criteria, User


class Authority:
    """A backend that verifies credentials and/or looks users up.

    Subclasses declare which credential kinds they verify in
    ``credential_kinds`` and set ``can_enumerate_users`` when they implement
    :meth:`find_users`. Authorities are shared across concurrent requests
    and must not keep per-request state.
    """

    type_name: ClassVar[str] = "authority"
    credential_kinds: ClassVar[frozenset[str]] = frozenset()
    can_enumerate_users: ClassVar[bool] = False

    def __init__(self, name: str | None = None):
        self.name = name or self.type_name

    @property
    def can_verify_credentials(self) -> bool:
        return bool(self.credential_kinds)

    def supports(self, credentials: Credentials) -> bool:
        return credentials.kind in self.credential_kinds

    async def verify_credentials(self, credentials: Credentials) -> User | None:
        """Return the user the credentials belong to, or None if not valid.

        Raises:
            BackendUnavailable: the backend could not be consulted
        """
        return None

    async def find_users(self, criteria: Criteria) -> set[User]:
        raise NotImplementedError(f"{self.name} cannot enumerate users")

    async def amplify(self, user: User) -> User:
        """Return ``user`` enriched with what this authority knows about it."""
        return user

    async def veto(self, user: User) -> bool:
        """Return True to refuse ``user`` even though another authority affirmed it."""
        return False

    async def on_authentication_success(
        self, user: User, credentials: Credentials, authority: "Authority"
    ) -> None:
        """Notification that ``authority`` authenticated ``user``."""

    async def on_authentication_failure(
        self, user: User | None, credentials: Credentials, reason: str
    ) -> None:
        """Notification that an authentication attempt failed.

        ``user`` is None unless some authority affirmed the credentials
        before the user was vetoed.
        """

    @classmethod
    def from_config(cls, name: str, params: dict[str, Any], **services: Any) -> "Authority":
        return cls(name=name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"
