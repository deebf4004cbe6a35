"""Configuration loader for portcullis YAML files."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from .errors import ConfigurationError

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = "/etc/portcullis/portcullis.yaml"


@dataclass
class AuthorityConfig:
    """One entry of the ``authorities`` list."""

    type: str
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class PortcullisConfig:
    """Parsed configuration; built once at startup."""

    portal: str | None = None
    modes: list[str] = field(default_factory=lambda: ["basic"])
    ui_mode: str | None = None
    authorities: list[AuthorityConfig] = field(default_factory=list)
    parameters: dict[str, dict[str, Any]] = field(default_factory=dict)
    unprotected_paths: list[str] = field(default_factory=lambda: ["/health", "/metrics"])

    def parameters_for(self, group: str) -> dict[str, Any]:
        return self.parameters.get(group) or {}

    @property
    def session_timeout(self) -> int:
        return int(self.parameters_for("policy").get("session_timeout", 1800))

    @property
    def check_portal(self) -> bool:
        """Whether authenticated users must also have access to ``portal``."""
        return self.portal is not None and bool(
            self.parameters_for("policy").get("check_portal", False)
        )


class ConfigLoader:
    """Loads and validates a portcullis configuration file."""

    def __init__(self, config_file: str = DEFAULT_CONFIG_PATH):
        self.config_file = Path(config_file)

    def load(self) -> PortcullisConfig:
        """Load the configuration file.

        Raises:
            ConfigurationError: the file is missing or malformed
        """
        if not self.config_file.exists():
            raise ConfigurationError(f"Config file does not exist: {self.config_file}")

        try:
            with open(self.config_file) as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.config_file}: {e}") from e

        config = self.parse(content or {})
        logger.info(
            "Configuration loaded",
            file=str(self.config_file),
            modes=config.modes,
            authorities=[a.name for a in config.authorities],
        )
        return config

    def parse(self, content: dict[str, Any]) -> PortcullisConfig:
        if not isinstance(content, dict):
            raise ConfigurationError("Configuration must be a mapping")

        modes = content.get("modes", ["basic"])
        if isinstance(modes, str):
            modes = [modes]
        if not isinstance(modes, list) or not modes:
            raise ConfigurationError("modes must be a non-empty list")

        parameters = content.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise ConfigurationError("parameters must be a mapping")
        for group, values in parameters.items():
            if values is not None and not isinstance(values, dict):
                raise ConfigurationError(f"parameters.{group} must be a mapping")

        authorities = [
            self._parse_authority(index, entry)
            for index, entry in enumerate(content.get("authorities") or [])
        ]
        if not authorities:
            raise ConfigurationError("At least one authority must be configured")

        portal = content.get("portal")
        return PortcullisConfig(
            portal=str(portal) if portal is not None else None,
            modes=[str(m) for m in modes],
            ui_mode=content.get("ui_mode"),
            authorities=authorities,
            parameters={str(k): dict(v or {}) for k, v in parameters.items()},
            unprotected_paths=list(
                content.get("unprotected_paths", ["/health", "/metrics"])
            ),
        )

    def _parse_authority(self, index: int, entry: Any) -> AuthorityConfig:
        if isinstance(entry, str):
            return AuthorityConfig(type=entry, name=entry)
        if not isinstance(entry, dict) or "type" not in entry:
            raise ConfigurationError(f"Authority #{index} must have a type")
        params = dict(entry)
        authority_type = str(params.pop("type"))
        name = str(params.pop("name", authority_type))
        return AuthorityConfig(type=authority_type, name=name, params=params)


def get_config_loader() -> ConfigLoader:
    """Get configured config loader instance."""
    config_file = os.getenv("PORTCULLIS_CONFIG_PATH", DEFAULT_CONFIG_PATH)
    return ConfigLoader(config_file)
