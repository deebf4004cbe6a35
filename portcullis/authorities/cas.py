"""CAS ticket validation."""

import xml.etree.ElementTree as ET
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from ..errors import BackendUnavailable, ConfigurationError
from ..models import Credentials, TicketCredentials, User
from ..sessions import fingerprint
from .base import Authority

logger = structlog.get_logger()

CAS_NS = "{http://www.yale.edu/tp/cas}"


@dataclass(frozen=True)
class CasValidation:
    """Outcome of a successful service ticket validation."""

    username: str
    pgt_iou: str | None = None
    attributes: dict[str, list[str]] = field(default_factory=dict)


TicketValidator = Callable[[str, str], Awaitable[CasValidation | None]]


def parse_service_response(body: str) -> CasValidation | None:
    """Parse a CAS 2.0/3.0 ``serviceResponse`` document.

    Returns None for ``authenticationFailure``.

    Raises:
        ValueError: the document is not a CAS service response
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ValueError(f"Malformed CAS response: {e}") from e

    success = root.find(f"{CAS_NS}authenticationSuccess")
    if success is None:
        failure = root.find(f"{CAS_NS}authenticationFailure")
        if failure is None:
            raise ValueError("Not a CAS service response")
        logger.info(
            "CAS ticket rejected",
            code=failure.get("code"),
            reason=(failure.text or "").strip(),
        )
        return None

    user = success.findtext(f"{CAS_NS}user")
    if not user or not user.strip():
        raise ValueError("CAS success response without a user")

    attributes: dict[str, list[str]] = {}
    attributes_el = success.find(f"{CAS_NS}attributes")
    if attributes_el is not None:
        for child in attributes_el:
            name = child.tag.replace(CAS_NS, "")
            attributes.setdefault(name, []).append((child.text or "").strip())

    pgt_iou = success.findtext(f"{CAS_NS}proxyGrantingTicket")
    return CasValidation(
        username=user.strip(),
        pgt_iou=pgt_iou.strip() if pgt_iou else None,
        attributes=attributes,
    )


class CasTicketValidator:
    """Validates service tickets against ``<base_url>/serviceValidate``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        verify: bool | str = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify = verify
        self.transport = transport

    async def __call__(self, ticket: str, service: str) -> CasValidation | None:
        validate_url = f"{self.base_url}/serviceValidate"

        async with httpx.AsyncClient(
            timeout=self.timeout, verify=self.verify, transport=self.transport
        ) as client:
            try:
                response = await client.get(
                    validate_url,
                    params={"ticket": ticket, "service": service},
                    headers={"User-Agent": "portcullis/1.0.0"},
                )
            except httpx.TimeoutException as e:
                logger.error("CAS validation timeout", url=validate_url)
                raise BackendUnavailable("CAS validation timed out") from e
            except httpx.RequestError as e:
                logger.error(
                    "CAS validation request error",
                    url=validate_url,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise BackendUnavailable("CAS server unreachable") from e

        if response.status_code != 200:
            logger.warning(
                "CAS validation failed: unexpected status",
                status=response.status_code,
                response=response.text[:200],
            )
            raise BackendUnavailable(f"CAS server returned {response.status_code}")

        try:
            return parse_service_response(response.text)
        except ValueError as e:
            logger.error("CAS validation returned garbage", error=str(e))
            raise BackendUnavailable("Malformed CAS response") from e


class CasAuthority(Authority):
    """Verifies CAS service tickets through a ticket validator."""

    type_name = "cas"
    credential_kinds = frozenset({TicketCredentials.kind})

    def __init__(
        self,
        validator: TicketValidator,
        name: str | None = None,
        cas_url: str | None = None,
    ):
        super().__init__(name)
        self.validator = validator
        self.cas_url = cas_url

    @classmethod
    def from_config(cls, name: str, params: dict[str, Any], **services: Any) -> "CasAuthority":
        base_url = params.get("base_url")
        validator = services.get("cas_validator")
        if validator is None:
            if not base_url:
                raise ConfigurationError("base_url parameter is required for CAS")
            validator = CasTicketValidator(base_url)
        return cls(validator, name=name, cas_url=base_url)

    async def verify_credentials(self, credentials: Credentials) -> User | None:
        if not isinstance(credentials, TicketCredentials):
            return None
        validation = await self.validator(credentials.ticket, credentials.service)
        if validation is None:
            logger.info("CAS ticket not valid", ticket=fingerprint(credentials.ticket))
            return None

        user = User(
            validation.username, attributes=validation.attributes, authority=self.name
        )
        if self.cas_url:
            user = user.with_extension("cas_url", self.cas_url)
        if validation.pgt_iou:
            user = user.with_extension("pgt_iou", validation.pgt_iou)
        return user
