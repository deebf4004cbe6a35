"""Shared fixtures."""

import base64

import pytest

from portcullis.authorities.static import StaticAuthority
from portcullis.request import AuthRequest


def basic_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


def make_request(
    url: str = "http://app.example.org/",
    method: str = "GET",
    headers: dict[str, str] | None = None,
    form: dict[str, str] | None = None,
    session_id: str | None = None,
) -> AuthRequest:
    return AuthRequest(
        method=method,
        url=url,
        headers=headers or {},
        form=form or {},
        session_id=session_id,
    )


@pytest.fixture
def static_authority() -> StaticAuthority:
    authority = StaticAuthority("local")
    authority.valid_credentials("jo", "secret")
    authority.user("jo", first_name="Jo", last_name="Smith", mail=["jo@example.org"])
    authority.valid_credentials("sam", "hunter2")
    return authority
