from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

OPTION_FILE_NAME = ".orasync.yml"
DEFAULT_TEMP_SCHEMA = "ORASYNC_TMP"
CONNECTION_KEYS = ("host", "port", "service_name", "username", "password")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class OracleConfig:
    host: str
    port: int
    service_name: str
    username: str
    password: str

    @property
    def dsn(self) -> str:
        return f"{self.host}:{self.port}/{self.service_name}"


@dataclass(frozen=True)
class SyncOptions:
    temp_schema: str = DEFAULT_TEMP_SCHEMA
    temp_tablespace: str | None = None
    include_schemas: list[str] = field(default_factory=list)
    exclude_schemas: list[str] = field(default_factory=list)
    line_ending: str = "LF"

    def wants_schema(self, name: str) -> bool:
        upper = name.upper()
        if upper == self.temp_schema.upper():
            return False
        if self.include_schemas:
            return upper in self.include_schemas
        return upper not in self.exclude_schemas


def _to_upper_list(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        raise ConfigError("List type is required.")
    return [str(item).strip().upper() for item in raw if str(item).strip()]


def normalize_identifier(raw: Any) -> str:
    """Fold an option value naming an Oracle object the way Oracle does.

    Unquoted names are upper-cased; a name in double quotes keeps its case.
    """
    text = str(raw).strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return text[1:-1]
    return text.upper()


def option_identifier(name: str) -> str:
    """Inverse of :func:`normalize_identifier` for values written to option files."""
    if name == name.upper():
        return name
    return f'"{name}"'


def load_option_file(path: Path) -> dict[str, Any]:
    """Read one ``.orasync.yml`` file. A missing file yields no options."""
    if not path.exists():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Root of {path} must be a map/dictionary.")
    return {str(key): value for key, value in raw.items()}


def write_option_file(path: Path, values: Mapping[str, Any]) -> None:
    path.write_text(
        yaml.safe_dump(dict(values), default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )


def oracle_config_from(options: Mapping[str, Any]) -> OracleConfig:
    try:
        oracle = OracleConfig(
            host=str(options["host"]).strip(),
            port=int(options.get("port", 1521)),
            service_name=str(options["service_name"]).strip(),
            username=str(options["username"]).strip(),
            password=str(options.get("password", "")),
        )
    except KeyError as exc:
        raise ConfigError(f"Missing connection option: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid port option: {options.get('port')!r}") from exc

    if not oracle.host or not oracle.service_name or not oracle.username:
        raise ConfigError("host/service_name/username must be non-empty.")
    return oracle


def sync_options_from(options: Mapping[str, Any]) -> SyncOptions:
    temp_schema = normalize_identifier(options.get("temp_schema") or DEFAULT_TEMP_SCHEMA)
    if not temp_schema:
        raise ConfigError("temp_schema must be non-empty.")

    line_ending = str(options.get("line_ending", "LF")).strip().upper()
    if line_ending not in {"LF", "CRLF"}:
        raise ConfigError("line_ending must be LF or CRLF.")

    tablespace = options.get("temp_tablespace")
    return SyncOptions(
        temp_schema=temp_schema,
        temp_tablespace=str(tablespace).strip() if tablespace else None,
        include_schemas=_to_upper_list(options.get("include_schemas")),
        exclude_schemas=_to_upper_list(options.get("exclude_schemas")),
        line_ending=line_ending,
    )
