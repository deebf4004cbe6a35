"""Resolution across an ordered list of authorities."""

from collections.abc import Iterable

import structlog

from ..errors import (
    AmbiguousIdentity,
    BackendUnavailable,
    ConfigurationError,
    VerificationRejected,
)
from ..models import Credentials, Criteria, User
from .base import Authority

logger = structlog.get_logger()


class CompositeAuthority:
    """Consults member authorities in configured order.

    Verification stops at the first authority that affirms the credentials.
    Rejections and backend errors look the same to callers unless every
    consulted authority errored, so the response does not reveal which
    backends exist or are down.
    """

    def __init__(self, authorities: Iterable[Authority]):
        self.authorities: tuple[Authority, ...] = tuple(authorities)
        if not self.authorities:
            raise ConfigurationError("At least one authority must be configured")

    async def verify_credentials(self, credentials: Credentials) -> User:
        """Return the user from the first affirming authority.

        Once an authority affirms the credentials every member may veto the
        user; then the user is amplified and every member is told of the
        success. Members are told of failures too, with a short reason.

        Raises:
            VerificationRejected: no authority affirmed the credentials, or
                the affirmed user was vetoed
            BackendUnavailable: every authority consulted failed with an error
        """
        consulted = 0
        errors = 0
        for authority in self.authorities:
            if not authority.supports(credentials):
                continue
            consulted += 1
            try:
                user = await authority.verify_credentials(credentials)
            except (BackendUnavailable, OSError) as e:
                errors += 1
                logger.error(
                    "Authority unavailable during verification",
                    authority=authority.name,
                    error=str(e),
                )
                continue

            if user is not None:
                return await self._accept(user, credentials, authority)

        if consulted == 0:
            reason = f"no configured authorities support {credentials.kind!r} credentials"
            logger.warning(
                "No configured authority supports credentials", kind=credentials.kind
            )
        elif errors == consulted:
            logger.warning("Authentication attempt failed: all authorities errored")
            await self._notify_failure(None, credentials, "authorities unavailable")
            raise BackendUnavailable("no authority could verify the credentials")
        else:
            reason = "invalid credentials"
            logger.info("Authentication attempt failed", kind=credentials.kind)
        await self._notify_failure(None, credentials, reason)
        raise VerificationRejected(reason)

    async def _accept(
        self, user: User, credentials: Credentials, affirming: Authority
    ) -> User:
        vetoers = [a.name for a in self.authorities if await self._vetoes(a, user)]
        if vetoers:
            reason = "user vetoed by " + ", ".join(vetoers)
            logger.info(
                "Authentication attempt failed",
                username=user.username,
                reason=reason,
            )
            await self._notify_failure(user, credentials, reason)
            raise VerificationRejected(reason)

        user = await self._amplify(user)
        logger.info(
            "User successfully authenticated",
            username=user.username,
            authority=affirming.name,
            kind=credentials.kind,
        )
        for authority in self.authorities:
            try:
                await authority.on_authentication_success(user, credentials, affirming)
            except BackendUnavailable as e:
                logger.warning(
                    "Authority unavailable during success notification",
                    authority=authority.name,
                    error=str(e),
                )
        return user

    @staticmethod
    async def _vetoes(authority: Authority, user: User) -> bool:
        try:
            return await authority.veto(user)
        except BackendUnavailable as e:
            # An authority that cannot be asked counts as vetoing.
            logger.error(
                "Authority unavailable during veto poll",
                authority=authority.name,
                error=str(e),
            )
            return True

    async def _notify_failure(
        self, user: User | None, credentials: Credentials, reason: str
    ) -> None:
        for authority in self.authorities:
            try:
                await authority.on_authentication_failure(user, credentials, reason)
            except BackendUnavailable as e:
                logger.warning(
                    "Authority unavailable during failure notification",
                    authority=authority.name,
                    error=str(e),
                )

    async def _amplify(self, user: User) -> User:
        for authority in self.authorities:
            try:
                user = await authority.amplify(user)
            except BackendUnavailable as e:
                logger.warning(
                    "Authority unavailable during amplification",
                    authority=authority.name,
                    error=str(e),
                )
        return user

    async def find_users(self, criteria: Criteria) -> set[User]:
        """Union of matches from every authority that can enumerate users.

        The same username returned by several authorities is merged into one
        user, earlier authorities taking precedence.
        """
        found: dict[str, User] = {}
        for authority in self.authorities:
            if not authority.can_enumerate_users:
                continue
            try:
                users = await authority.find_users(criteria)
            except BackendUnavailable as e:
                logger.error(
                    "Authority unavailable during user search",
                    authority=authority.name,
                    error=str(e),
                )
                continue
            for user in users:
                existing = found.get(user.username)
                found[user.username] = existing.merged(user) if existing else user
        return set(found.values())

    async def find_user(self, criteria: Criteria) -> User | None:
        """The single user matching ``criteria``, or None.

        None covers both no match and more than one match; an ambiguous
        search never picks one of the candidates.
        """
        users = await self.find_users(criteria)
        try:
            return self._sole(users)
        except AmbiguousIdentity as e:
            logger.warning("Ambiguous user search", matches=len(e.usernames))
            return None

    @staticmethod
    def _sole(users: set[User]) -> User | None:
        if len(users) > 1:
            raise AmbiguousIdentity(sorted(u.username for u in users))
        return next(iter(users), None)
