"""Identity and credential models."""

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Protocol

Criteria = str | Mapping[str, str]


def _freeze_attributes(
    attributes: Mapping[str, str | Iterable[str]] | None,
) -> Mapping[str, tuple[str, ...]]:
    frozen: dict[str, tuple[str, ...]] = {}
    for name, values in (attributes or {}).items():
        if isinstance(values, str):
            frozen[name] = (values,)
        else:
            frozen[name] = tuple(str(v) for v in values)
    return MappingProxyType(frozen)


def _freeze_groups(
    memberships: Mapping[str, Iterable[str]] | None,
) -> Mapping[str, frozenset[str]]:
    frozen: dict[str, frozenset[str]] = {}
    for portal, groups in (memberships or {}).items():
        frozen[portal] = frozenset([groups] if isinstance(groups, str) else groups)
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class User:
    """Canonical user identity, independent of the backend that produced it.

    Users compare and hash by username. ``authority`` names the authority
    that resolved the user and is only used for diagnostics.

    ``portals`` lists the applications the user may use at all;
    ``group_memberships`` maps a portal to the groups the user holds there.
    A group membership implies access to its portal.
    """

    username: str
    attributes: Mapping[str, tuple[str, ...]] = field(
        default_factory=dict, compare=False
    )
    authority: str | None = field(default=None, compare=False)
    extensions: Mapping[str, Any] = field(default_factory=dict, compare=False)
    portals: frozenset[str] = field(default_factory=frozenset, compare=False)
    group_memberships: Mapping[str, frozenset[str]] = field(
        default_factory=dict, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _freeze_attributes(self.attributes))
        object.__setattr__(self, "extensions", MappingProxyType(dict(self.extensions)))
        groups = _freeze_groups(self.group_memberships)
        object.__setattr__(self, "group_memberships", groups)
        object.__setattr__(self, "portals", frozenset(self.portals) | frozenset(groups))

    def first(self, name: str, default: str | None = None) -> str | None:
        """First value of a multi-valued attribute."""
        values = self.attributes.get(name)
        return values[0] if values else default

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.first("first_name"), self.first("last_name")) if p]
        return " ".join(parts) if parts else self.username

    def matches(self, criteria: Criteria) -> bool:
        """True when every criterion matches this user.

        ``username`` matches the username; other keys match when the value
        is one of the user's values for that attribute.
        """
        if isinstance(criteria, str):
            criteria = {"username": criteria}
        if not criteria:
            return False
        for name, value in criteria.items():
            if name == "username":
                if self.username != value:
                    return False
            elif value not in self.attributes.get(name, ()):
                return False
        return True

    def may_access(self, portal: str) -> bool:
        return portal in self.portals

    def permit(self, *groups: str, portal: str) -> bool:
        """True when the user holds any of ``groups`` in ``portal``.

        Without groups this is the same as :meth:`may_access`.
        """
        if not groups:
            return self.may_access(portal)
        held = self.group_memberships.get(portal, frozenset())
        return any(group in held for group in groups)

    def in_portal(self, portal: str, *groups: str) -> "User":
        """Copy of this user with access to ``portal`` and membership in ``groups``."""
        memberships = dict(self.group_memberships)
        if groups:
            memberships[portal] = memberships.get(portal, frozenset()) | set(groups)
        return dataclasses.replace(
            self, portals=self.portals | {portal}, group_memberships=memberships
        )

    def with_attributes(self, **attributes: str | Iterable[str]) -> "User":
        merged = dict(self.attributes)
        merged.update(_freeze_attributes(attributes))
        return dataclasses.replace(self, attributes=merged)

    def with_extension(self, name: str, value: Any) -> "User":
        extensions = dict(self.extensions)
        extensions[name] = value
        return dataclasses.replace(self, extensions=extensions)

    def merged(self, other: "User") -> "User":
        """Copy values from ``other`` that this user does not already have.

        Portals and group memberships are combined.
        """
        attributes = dict(other.attributes)
        attributes.update(self.attributes)
        extensions = dict(other.extensions)
        extensions.update(self.extensions)
        memberships = {
            portal: self.group_memberships.get(portal, frozenset())
            | other.group_memberships.get(portal, frozenset())
            for portal in {*self.group_memberships, *other.group_memberships}
        }
        return dataclasses.replace(
            self,
            attributes=attributes,
            extensions=extensions,
            portals=self.portals | other.portals,
            group_memberships=memberships,
            authority=self.authority or other.authority,
        )


class Credentials(Protocol):
    """Mode-specific credentials handed from a mode to the authorities."""

    kind: ClassVar[str]


@dataclass(frozen=True)
class PasswordCredentials:
    kind: ClassVar[str] = "user"

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class DigestCredentials:
    """Parsed RFC 2617 digest authorization parameters."""

    kind: ClassVar[str] = "digest"

    username: str
    realm: str
    nonce: str
    uri: str
    response: str = field(repr=False)
    method: str = "GET"
    qop: str | None = None
    nc: str | None = None
    cnonce: str | None = None


@dataclass(frozen=True)
class TicketCredentials:
    kind: ClassVar[str] = "cas"

    ticket: str = field(repr=False)
    service: str
