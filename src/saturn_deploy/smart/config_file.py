# ABOUTME: Load, write and generate .saturn.yml smart deploy configs
# ABOUTME: YAML persistence plus config generation from live Saturn resources

"""
.saturn.yml persistence.

    load_config(dir)       -> SmartConfig | None   (None: no file, not an error)
    write_config(dir, cfg) -> Path
    generate_config(resources) -> SmartConfig     (one component per git resource)

A missing file is a normal outcome: callers fall back to auto-detection
(see smart.git.auto_detect_config). Everything else that goes wrong while
reading (bad YAML, wrong schema, unsupported version) raises ConfigError
with the file path in the message.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
import yaml
from pydantic import ValidationError

from saturn_deploy.errors import ConfigError
from saturn_deploy.smart.models import SUPPORTED_CONFIG_VERSION, SmartComponent, SmartConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

    from saturn_deploy.utils.client import Resource

logger = structlog.get_logger(__name__)

CONFIG_FILE_NAME = ".saturn.yml"
DEFAULT_BASE_BRANCH = "main"

_KEY_SEPARATORS = re.compile(r"[\s_.]+")


def config_path(directory: str | Path) -> Path:
    return Path(directory) / CONFIG_FILE_NAME


def load_config(directory: str | Path) -> SmartConfig | None:
    """
    Read .saturn.yml from a directory.

    Returns:
        The validated config, or None when the file does not exist.

    Raises:
        ConfigError: If the file is not valid YAML, does not match the
                     schema, or declares an unsupported version.
    """
    path = config_path(directory)
    if not path.is_file():
        logger.debug("No smart deploy config", path=str(path))
        return None

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML: {e}", path) from e
    except OSError as e:
        raise ConfigError(f"cannot read config: {e}", path) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("config must be a mapping", path)

    try:
        config = SmartConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_validation_error(e), path) from e

    logger.info("Loaded smart deploy config", path=str(path), components=len(config.components))
    return config


def write_config(directory: str | Path, config: SmartConfig) -> Path:
    """Write config as .saturn.yml, omitting empty optional fields."""
    path = config_path(directory)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config_to_dict(config), f, default_flow_style=False, sort_keys=False)
    logger.info("Wrote smart deploy config", path=str(path), components=len(config.components))
    return path


def config_to_dict(config: SmartConfig) -> dict[str, Any]:
    components: dict[str, dict[str, Any]] = {}
    for name, component in config.components.items():
        entry: dict[str, Any] = {"path": component.path}
        if component.resource:
            entry["resource"] = component.resource
        if component.triggers:
            entry["triggers"] = list(component.triggers)
        components[name] = entry
    return {
        "version": config.version,
        "base_branch": config.base_branch,
        "components": components,
    }


def generate_config(resources: Iterable[Resource]) -> SmartConfig:
    """
    Build a config with one component per git-backed resource.

    The component path is "<base_directory>/**", or "**" when the resource
    builds from the repository root. Resources without a git repository
    are skipped. Keys come from sanitize_key(name); a colliding key gets a
    numeric suffix ("api", "api-2", ...).
    """
    components: dict[str, SmartComponent] = {}
    for resource in resources:
        if not resource.git_repository:
            continue

        base = (resource.base_directory or "").strip().strip("/")
        pattern = f"{base}/**" if base else "**"

        key = sanitize_key(resource.name) or resource.uuid
        unique = key
        suffix = 2
        while unique in components:
            unique = f"{key}-{suffix}"
            suffix += 1

        components[unique] = SmartComponent(path=pattern, resource=resource.name)

    return SmartConfig(
        version=SUPPORTED_CONFIG_VERSION,
        base_branch=DEFAULT_BASE_BRANCH,
        components=components,
    )


def sanitize_key(name: str) -> str:
    """
    Turn a resource name into a component key.

        "My API App"     -> "my-api-app"
        "web_frontend"   -> "web-frontend"
        "With.Dots.Here" -> "with-dots-here"
    """
    return _KEY_SEPARATORS.sub("-", name.strip().lower()).strip("-")


def normalize_git_url(url: str) -> str:
    """
    Reduce a git remote URL to "host/owner/repo" for comparison.

        git@github.com:org/repo.git     -> github.com/org/repo
        https://github.com/org/repo.git -> github.com/org/repo
        ssh://git@gitlab.com/a/b/c.git  -> gitlab.com/a/b/c
    """
    url = url.strip()

    for scheme in ("https://", "http://", "ssh://", "git://"):
        if url.startswith(scheme):
            url = url[len(scheme):]
            break
    else:
        # scp-like syntax: user@host:owner/repo
        if "@" in url and ":" in url.split("@", 1)[1]:
            host, _, rest = url.split("@", 1)[1].partition(":")
            url = f"{host}/{rest}"

    if "@" in url.split("/", 1)[0]:
        url = url.split("@", 1)[1]

    url = url.rstrip("/")
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)
