"""Framework-neutral view of an inbound request."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


@dataclass(frozen=True)
class AuthRequest:
    """The parts of a request that modes and responders look at.

    Header names are stored lower-cased. ``form`` holds posted fields and is
    empty for non-form requests.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    form: Mapping[str, str] = field(default_factory=dict)
    session_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(
            self, "headers", {k.lower(): v for k, v in self.headers.items()}
        )

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def query(self) -> dict[str, str]:
        return dict(parse_qsl(urlsplit(self.url).query, keep_blank_values=True))

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def param(self, name: str) -> str | None:
        """Posted field or query parameter, posted fields first."""
        if name in self.form:
            return self.form[name]
        return self.query.get(name)

    @property
    def interactive(self) -> bool:
        """Whether the client is a browser expecting HTML."""
        return "text/html" in (self.header("accept") or "")

    @property
    def attempted_path(self) -> str:
        parts = urlsplit(self.url)
        return parts.path + ("?" + parts.query if parts.query else "")


def without_query_param(url: str, name: str) -> str:
    """Return ``url`` with every ``name`` query parameter removed."""
    parts = urlsplit(url)
    kept = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k != name
    ]
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment)
    )
