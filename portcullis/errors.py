"""Exceptions raised during a resolution cycle."""


class PortcullisError(Exception):
    """Base exception for all portcullis errors."""


class ConfigurationError(PortcullisError):
    """Raised at startup when modes or authorities are misconfigured."""


class ExtractionDeclined(PortcullisError):
    """A mode cannot read credentials from this request.

    Not a failure: the negotiator moves on to the next mode.
    """


class AuthenticationFailure(PortcullisError):
    """Credentials were extracted but did not resolve to a user."""


class VerificationRejected(AuthenticationFailure):
    """Credentials were well formed but no authority accepted them."""


class BackendUnavailable(AuthenticationFailure):
    """An authority could not be reached or timed out."""

    def __init__(self, message: str, authority: str | None = None):
        super().__init__(message)
        self.authority = authority


class AmbiguousIdentity(PortcullisError):
    """More than one user matched where exactly one was required."""

    def __init__(self, usernames: list[str]):
        self.usernames = usernames

    def __str__(self) -> str:
        return "{} users matched: {}".format(
            len(self.usernames), ", ".join(self.usernames)
        )


class AuthenticationRequired(PortcullisError):
    """The identity was accessed before the cycle reached authenticated."""

    def __init__(self, challenges: list[str] | None = None):
        super().__init__("Authentication required")
        self.challenges = list(challenges or [])


class AccessDenied(PortcullisError):
    """The user is authenticated but may not use this portal or resource."""

    def __init__(self, portal: str | None = None, groups: tuple[str, ...] = ()):
        super().__init__("Access denied")
        self.portal = portal
        self.groups = groups


class DirectoryError(PortcullisError):
    """Raised by directory clients when the directory cannot be queried."""
