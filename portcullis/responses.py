"""Response instructions produced by modes and responders.

The core never builds HTTP responses itself; adapters such as
:mod:`portcullis.middleware` translate these instructions.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Challenge:
    """401 response carrying one challenge per mode, in mode order."""

    challenges: list[str]
    status: int = 401


@dataclass(frozen=True)
class Redirect:
    location: str
    status: int = 302


@dataclass(frozen=True)
class RenderLogin:
    """Render the login form that posts to ``path``."""

    path: str
    error: str | None = None
    username: str | None = None
    url: str | None = None
    logged_out: bool = False
    status: int = 200


@dataclass(frozen=True)
class Message:
    body: str
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)


Instruction = Challenge | Redirect | RenderLogin | Message
