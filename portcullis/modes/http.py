"""HTTP Basic and Digest authentication (RFC 2617)."""

import base64
import binascii
import secrets

from ..errors import ExtractionDeclined
from ..models import DigestCredentials, PasswordCredentials
from ..request import AuthRequest
from .base import Rfc2617Mode, parse_auth_params


class BasicMode(Rfc2617Mode):
    key = "basic"
    scheme = "Basic"

    def extract_credentials(self, request: AuthRequest) -> PasswordCredentials:
        encoded = self.authorization(request)
        try:
            decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ExtractionDeclined("malformed Basic credentials") from e
        username, sep, password = decoded.partition(":")
        if not sep or not username:
            raise ExtractionDeclined("Basic credentials without username")
        return PasswordCredentials(username=username, password=password)


class DigestMode(Rfc2617Mode):
    key = "digest"
    scheme = "Digest"

    required = ("username", "realm", "nonce", "uri", "response")

    def challenge(self, request: AuthRequest) -> str:
        nonce = secrets.token_hex(16)
        return f'{super().challenge(request)}, nonce="{nonce}", qop="auth"'

    def extract_credentials(self, request: AuthRequest) -> DigestCredentials:
        params = parse_auth_params(self.authorization(request))
        missing = [name for name in self.required if not params.get(name)]
        if missing:
            raise ExtractionDeclined(f"Digest credentials missing {', '.join(missing)}")
        if params["realm"] != self.realm:
            raise ExtractionDeclined("Digest credentials for another realm")
        if params["uri"] != request.attempted_path:
            raise ExtractionDeclined("Digest uri does not match the request")
        if params.get("algorithm", "MD5").upper() != "MD5":
            raise ExtractionDeclined("unsupported Digest algorithm")
        qop = params.get("qop")
        if qop and not (params.get("nc") and params.get("cnonce")):
            raise ExtractionDeclined("Digest qop without nc/cnonce")
        return DigestCredentials(
            username=params["username"],
            realm=params["realm"],
            nonce=params["nonce"],
            uri=params["uri"],
            response=params["response"],
            method=request.method,
            qop=qop,
            nc=params.get("nc"),
            cnonce=params.get("cnonce"),
        )
