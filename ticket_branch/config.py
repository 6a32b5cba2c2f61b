"""
Configuration module for ticket-branch.

Settings come from environment variables (optionally from a .env file),
can be overridden by a YAML file and finally by command line flags.
The resulting AppConfig is passed explicitly to every component.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from string import Formatter
from typing import Any, Optional

import yaml
from dotenv import load_dotenv


# Load environment variables from .env file
load_dotenv()


PARENT_FALLBACK_OWN_LABEL = "own_label"
PARENT_FALLBACK_PARENT_LABEL = "parent_label"
PARENT_FALLBACK_POLICIES = (PARENT_FALLBACK_OWN_LABEL, PARENT_FALLBACK_PARENT_LABEL)

BRANCH_TEMPLATE_FIELDS = ("id", "slug", "trigram", "version")
MAINTENANCE_TEMPLATE_FIELDS = ("version",)


class ConfigError(Exception):
    """Configuration could not be loaded or is invalid."""

    kind = "ConfigError"


_TRUE_VALUES = ("1", "true", "yes", "on")


def _parse_bool(text: str) -> bool:
    return text.strip().lower() in _TRUE_VALUES


def _env_bool(name: str, default: str) -> bool:
    return _parse_bool(os.getenv(name, default))


@dataclass(frozen=True)
class TrackerConfig:
    """Configuration for the issue tracker API."""

    # Base URL of the tracker, e.g. https://redmine.example.com
    url: str = field(
        default_factory=lambda: os.getenv("TRACKER_URL", "")
    )
    api_key: str = field(
        default_factory=lambda: os.getenv("TRACKER_API_KEY", "")
    )
    api_key_header: str = field(
        default_factory=lambda: os.getenv("TRACKER_API_KEY_HEADER", "X-Redmine-API-Key")
    )

    # Request timeout in seconds
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30"))
    )
    verify_ssl: bool = field(
        default_factory=lambda: _env_bool("TRACKER_VERIFY_SSL", "true")
    )

    def issue_url(self, ticket_id: int) -> str:
        """Get the JSON endpoint of a single ticket."""
        return f"{self.url.rstrip('/')}/issues/{ticket_id}.json"


@dataclass(frozen=True)
class GitConfig:
    """Configuration for the local repository."""

    repo_path: Path = field(
        default_factory=lambda: Path(os.getenv("GIT_REPO_PATH", "."))
    )
    remote: str = field(
        default_factory=lambda: os.getenv("GIT_REMOTE", "origin")
    )
    # Default integration reference used when no parent or maintenance branch applies
    default_ref: str = field(
        default_factory=lambda: os.getenv("DEFAULT_BASE_REF", "origin/master")
    )


@dataclass(frozen=True)
class NamingConfig:
    """
    Configuration for branch naming.

    ``branch_template`` accepts the fields ``{id}``, ``{slug}``,
    ``{trigram}`` and ``{version}``. A team convention such as
    ``rd-{id}-{trigram}-{version}-{slug}`` is expressed here.
    """

    branch_template: str = field(
        default_factory=lambda: os.getenv("BRANCH_NAME_TEMPLATE", "{id}")
    )
    maintenance_template: str = field(
        default_factory=lambda: os.getenv("MAINTENANCE_BRANCH_TEMPLATE", "release-{version}")
    )
    slug_max_length: int = field(
        default_factory=lambda: int(os.getenv("SLUG_MAX_LENGTH", "50"))
    )

    @property
    def id_prefix(self) -> str:
        """Literal text of the branch template preceding ``{id}``."""
        return self.branch_template.split("{id}", 1)[0]


@dataclass(frozen=True)
class ResolutionConfig:
    """Configuration for base reference resolution."""

    # What to try when a ticket's parent has no branch
    parent_fallback: str = field(
        default_factory=lambda: os.getenv("PARENT_FALLBACK", PARENT_FALLBACK_OWN_LABEL)
    )


def _template_fields(template: str) -> list[str]:
    return [name for _, name, _, _ in Formatter().parse(template) if name is not None]


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration aggregating all config sections."""

    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    git: GitConfig = field(default_factory=GitConfig)
    naming: NamingConfig = field(default_factory=NamingConfig)
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)

    # Logging level
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if not self.tracker.url:
            errors.append("TRACKER_URL is required")
        if not self.tracker.api_key:
            errors.append("TRACKER_API_KEY is required (or pass --token)")
        if self.tracker.request_timeout <= 0:
            errors.append("REQUEST_TIMEOUT must be positive")

        if not self.git.remote:
            errors.append("GIT_REMOTE must not be empty")
        if not self.git.default_ref:
            errors.append("DEFAULT_BASE_REF must not be empty")

        try:
            branch_fields = _template_fields(self.naming.branch_template)
            maintenance_fields = _template_fields(self.naming.maintenance_template)
        except ValueError as e:
            errors.append(f"Malformed naming template: {e}")
        else:
            if "id" not in branch_fields:
                errors.append("BRANCH_NAME_TEMPLATE must contain {id}")
            elif _template_fields(self.naming.id_prefix):
                errors.append("BRANCH_NAME_TEMPLATE must not use fields before {id}")
            unknown = set(branch_fields) - set(BRANCH_TEMPLATE_FIELDS)
            if unknown:
                errors.append(f"BRANCH_NAME_TEMPLATE has unknown fields: {sorted(unknown)}")
            unknown = set(maintenance_fields) - set(MAINTENANCE_TEMPLATE_FIELDS)
            if unknown:
                errors.append(
                    f"MAINTENANCE_BRANCH_TEMPLATE has unknown fields: {sorted(unknown)}"
                )
        if self.naming.slug_max_length <= 0:
            errors.append("SLUG_MAX_LENGTH must be positive")

        if self.resolution.parent_fallback not in PARENT_FALLBACK_POLICIES:
            errors.append(
                f"PARENT_FALLBACK must be one of {', '.join(PARENT_FALLBACK_POLICIES)}"
            )

        return errors


def get_config() -> AppConfig:
    """
    Get application configuration.

    Returns:
        AppConfig instance with all settings loaded from environment.
    """
    return AppConfig()


_SECTIONS = {
    "tracker": TrackerConfig,
    "git": GitConfig,
    "naming": NamingConfig,
    "resolution": ResolutionConfig,
}


def _convert(key: str, value: Any, target: type) -> Any:
    """
    Convert a YAML value to the type of its config field.

    Strings are accepted everywhere and parsed the same way as the
    environment variables.

    Raises:
        ConfigError: If the value cannot be converted.
    """
    if target is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (str, int)):
            return _parse_bool(str(value))
    elif target in (int, float):
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            try:
                return target(value)
            except ValueError as e:
                raise ConfigError(
                    f"Invalid value for '{key}': expected {target.__name__}, got {value!r}"
                ) from e
    elif target is str:
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return str(value)
    elif target is Path:
        if isinstance(value, str) and value:
            return Path(value)

    raise ConfigError(
        f"Invalid value for '{key}': expected {target.__name__}, got {value!r}"
    )


def _build_section(name: str, section_cls: type, values: Any) -> Any:
    if values is None:
        return section_cls()
    if not isinstance(values, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")

    types = {f.name: f.type for f in fields(section_cls)}
    unknown = set(values) - set(types)
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {sorted(unknown)}")

    converted = {
        key: _convert(f"{name}.{key}", value, types[key])
        for key, value in values.items()
    }
    return section_cls(**converted)


def load_config(path: Optional[Path] = None) -> AppConfig:
    """
    Load configuration, applying a YAML override file if given.

    Values missing from the file keep their environment defaults.

    Args:
        path: Optional path to a YAML configuration file.

    Returns:
        AppConfig instance.

    Raises:
        ConfigError: If the file cannot be read or has an invalid layout.
    """
    if path is None:
        return get_config()

    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return get_config()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    unknown = set(data) - set(_SECTIONS) - {"log_level"}
    if unknown:
        raise ConfigError(f"Unknown sections in {path}: {sorted(unknown)}")

    sections = {
        name: _build_section(name, section_cls, data.get(name))
        for name, section_cls in _SECTIONS.items()
    }
    if "log_level" in data:
        return AppConfig(**sections, log_level=_convert("log_level", data["log_level"], str))
    return AppConfig(**sections)
