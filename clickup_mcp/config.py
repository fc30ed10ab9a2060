"""
Configuration for the ClickUp MCP server.

Settings come from environment variables, optionally backed by a TOML file
(``clickup-mcp.toml``). Environment variables always win over the file.

Example file::

    [clickup]
    api_key = "pk_..."
    team_id = "9012345678"
    max_images = 4
    max_response_size_mb = 1.0
"""

import os
import re
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from .errors import home_dir


CONFIG_FILENAME = "clickup-mcp.toml"

DEFAULT_MAX_IMAGES = 4
DEFAULT_MAX_RESPONSE_SIZE_MB = 1.0
# ClickUp's rate limit window; also how long a built search index stays fresh
DEFAULT_REFRESH_INTERVAL = 60.0

_LANG_PREFIX_RE = re.compile(r"^[a-zA-Z]{2,3}")


@dataclass
class ClickUpConfig:
    """Complete server configuration."""
    api_key: str
    team_id: str
    max_images: int = DEFAULT_MAX_IMAGES
    max_response_size_mb: float = DEFAULT_MAX_RESPONSE_SIZE_MB
    primary_language: Optional[str] = None
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL

    @property
    def max_response_bytes(self) -> int:
        return int(self.max_response_size_mb * 1024 * 1024)

    @property
    def language_hint(self) -> Optional[str]:
        """Non-English language hint for tool descriptions, if any."""
        if self.primary_language and self.primary_language != "en":
            return self.primary_language
        return None


def parse_language_hint(raw: Optional[str]) -> Optional[str]:
    """Reduce a locale like ``de_DE.UTF-8`` or ``en-GB`` to ``de`` / ``en``."""
    if not raw:
        return None
    match = _LANG_PREFIX_RE.match(raw)
    return match.group(0).lower() if match else None


def config_file_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Resolve the TOML path from CLICKUP_MCP_CONFIG or the default home."""
    env = os.environ if environ is None else environ
    explicit = env.get("CLICKUP_MCP_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    return home_dir() / CONFIG_FILENAME


def read_config_file(path: Path) -> dict[str, Any]:
    """
    Read the ``[clickup]`` table from a TOML file.

    Returns an empty dict if the file doesn't exist.

    Raises:
        ValueError: If the file is not valid TOML
    """
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e
    return dict(data.get("clickup", {}))


def _int_setting(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _float_setting(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    path: Optional[Path] = None,
) -> ClickUpConfig:
    """
    Load configuration from the environment and the optional TOML file.

    Raises:
        ValueError: If the API key or team id is missing, or a value is invalid
    """
    env = os.environ if environ is None else environ
    file_values = read_config_file(path or config_file_path(env))

    def setting(env_name: str, key: str, default: Any = None) -> Any:
        value = env.get(env_name)
        if value not in (None, ""):
            return value
        return file_values.get(key, default)

    api_key = setting("CLICKUP_API_KEY", "api_key")
    team_id = setting("CLICKUP_TEAM_ID", "team_id")
    if not api_key or not team_id:
        raise ValueError(
            "Missing ClickUp API key or team ID. "
            "Set CLICKUP_API_KEY and CLICKUP_TEAM_ID."
        )

    raw_language = (
        env.get("CLICKUP_PRIMARY_LANGUAGE")
        or file_values.get("primary_language")
        or env.get("LANG")
    )

    return ClickUpConfig(
        api_key=str(api_key),
        team_id=str(team_id),
        max_images=_int_setting(
            setting("MAX_IMAGES", "max_images", DEFAULT_MAX_IMAGES), "max_images"),
        max_response_size_mb=_float_setting(
            setting("MAX_RESPONSE_SIZE_MB", "max_response_size_mb", DEFAULT_MAX_RESPONSE_SIZE_MB),
            "max_response_size_mb"),
        primary_language=parse_language_hint(raw_language),
        refresh_interval=_float_setting(
            setting("CLICKUP_REFRESH_INTERVAL", "refresh_interval", DEFAULT_REFRESH_INTERVAL),
            "refresh_interval"),
    )
