"""Configuration management: TOML-based, global + per-store merge."""

from __future__ import annotations

import copy
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .patterns import (
    SCANNER_CHOICES,
    Pattern,
    Severity,
    UnsafePatternError,
    create_custom_pattern,
)

_GLOBAL_CONFIG_PATH = Path.home() / ".tucksafe" / "config.toml"

STORE_ENV = "TUCK_DIR"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

DEFAULT_CONFIG: dict[str, Any] = {
    "security": {
        "scan_secrets": True,
        "block_on_secrets": True,
        "min_severity": "high",
        "scanner": "builtin",
        "custom_patterns": [],
        "exclude_patterns": [],
        "exclude_files": [],
        "max_file_size": DEFAULT_MAX_FILE_SIZE,
    },
    "restore": {
        "workers": 4,
    },
}


class ConfigError(Exception):
    """Raised when configuration values are invalid."""


def resolve_store_dir(store: str | Path | None = None) -> Path:
    """Store directory: explicit argument, then $TUCK_DIR, then ~/.tuck."""
    if store:
        return Path(store).expanduser()
    env = os.environ.get(STORE_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".tuck"


def local_config_path(store_dir: str | Path) -> Path:
    return Path(store_dir) / ".tucksafe" / "config.toml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc


def load_config(store_dir: str | Path | None = None) -> dict[str, Any]:
    """Load merged config: defaults <- global <- per-store."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if _GLOBAL_CONFIG_PATH.exists():
        config = _deep_merge(config, _read_toml(_GLOBAL_CONFIG_PATH))

    if store_dir:
        local_path = local_config_path(store_dir)
        if local_path.exists():
            config = _deep_merge(config, _read_toml(local_path))

    return config


def save_config(store_dir: str | Path | None, key: str, value: str) -> None:
    """Save a config value. Uses per-store config if store_dir given, else global."""
    config_path = local_config_path(store_dir) if store_dir else _GLOBAL_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, Any] = {}
    if config_path.exists():
        existing = _read_toml(config_path)

    parts = key.split(".")
    target = existing
    for part in parts[:-1]:
        if part not in target:
            target[part] = {}
        target = target[part]

    target[parts[-1]] = _parse_value(value)

    _write_toml(config_path, existing)


def get_config_value(config: dict, key: str) -> Any:
    """Get a nested config value by dotted key."""
    parts = key.split(".")
    current = config
    for part in parts:
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current


def _parse_value(value: str) -> Any:
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if "," in value:
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _write_toml(path: Path, data: dict) -> None:
    """Write dict as TOML (nested tables, arrays, inline tables inside arrays)."""
    scalars: list[str] = []
    tables: list[str] = []
    _write_toml_section(scalars, tables, data, [])
    path.write_text("\n".join(scalars + tables).lstrip("\n") + "\n", encoding="utf-8")


def _write_toml_section(lines: list[str], tables: list[str], data: dict, prefix: list[str]) -> None:
    for key, value in data.items():
        if isinstance(value, dict):
            continue
        if isinstance(value, list):
            lines.append(f"{key} = [")
            for item in value:
                lines.append(f"    {_toml_value(item)},")
            lines.append("]")
        else:
            lines.append(f"{key} = {_toml_value(value)}")
    for key, value in data.items():
        if isinstance(value, dict):
            section = prefix + [key]
            tables.append(f"\n[{'.'.join(section)}]")
            nested: list[str] = []
            _write_toml_section(tables, nested, value, section)
            tables.extend(nested)


def _toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str):
        escaped = v.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(v, dict):
        inner = ", ".join(f"{k} = {_toml_value(item)}" for k, item in v.items())
        return "{ " + inner + " }"
    if isinstance(v, list):
        return "[" + ", ".join(_toml_value(item) for item in v) + "]"
    return str(v)


@dataclass
class SecurityConfig:
    """Typed view of the ``[security]`` table."""

    scan_secrets: bool = True
    block_on_secrets: bool = True
    min_severity: Severity = Severity.HIGH
    scanner: str = "builtin"
    gitleaks_path: str | None = None
    trufflehog_path: str | None = None
    custom_patterns: list[Pattern] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=list)
    exclude_files: list[str] = field(default_factory=list)
    max_file_size: int = DEFAULT_MAX_FILE_SIZE

    @classmethod
    def from_config(cls, config: dict[str, Any] | None) -> SecurityConfig:
        """Build from a full config dict (or None for defaults)."""
        section = (config or {}).get("security") or {}
        if not isinstance(section, dict):
            raise ConfigError("[security] must be a table")

        try:
            min_severity = Severity(str(section.get("min_severity", "high")).lower())
        except ValueError:
            raise ConfigError(
                f"security.min_severity must be one of: {', '.join(s.value for s in Severity)}"
            ) from None

        scanner = str(section.get("scanner", "builtin")).lower()
        if scanner not in SCANNER_CHOICES:
            raise ConfigError(f"security.scanner must be one of: {', '.join(SCANNER_CHOICES)}")

        max_file_size = section.get("max_file_size", DEFAULT_MAX_FILE_SIZE)
        if not isinstance(max_file_size, int) or isinstance(max_file_size, bool) or max_file_size <= 0:
            raise ConfigError("security.max_file_size must be a positive integer (bytes)")

        custom: list[Pattern] = []
        for i, raw in enumerate(section.get("custom_patterns") or []):
            if not isinstance(raw, dict) or not isinstance(raw.get("pattern"), str):
                raise ConfigError(f"security.custom_patterns[{i}] needs a 'pattern' string")
            try:
                custom.append(
                    create_custom_pattern(
                        f"config-{i}",
                        raw.get("name") or f"Custom Pattern {i + 1}",
                        raw["pattern"],
                        severity=raw.get("severity", "high"),
                        description=raw.get("description"),
                        placeholder=raw.get("placeholder"),
                        flags=raw.get("flags", ""),
                    )
                )
            except (UnsafePatternError, ValueError) as exc:
                raise ConfigError(f"security.custom_patterns[{i}]: {exc}") from exc

        return cls(
            scan_secrets=bool(section.get("scan_secrets", True)),
            block_on_secrets=bool(section.get("block_on_secrets", True)),
            min_severity=min_severity,
            scanner=scanner,
            gitleaks_path=section.get("gitleaks_path"),
            trufflehog_path=section.get("trufflehog_path"),
            custom_patterns=custom,
            exclude_patterns=list(section.get("exclude_patterns") or []),
            exclude_files=list(section.get("exclude_files") or []),
            max_file_size=max_file_size,
        )


def load_security_config(store_dir: str | Path | None = None) -> SecurityConfig:
    return SecurityConfig.from_config(load_config(store_dir))
