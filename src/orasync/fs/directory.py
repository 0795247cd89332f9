from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

from orasync.config import (
    OPTION_FILE_NAME,
    ConfigError,
    OracleConfig,
    SyncOptions,
    load_option_file,
    normalize_identifier,
    oracle_config_from,
    sync_options_from,
)


def _inherited_options(path: Path) -> dict[str, Any]:
    """Merge option files of every ancestor of ``path``, nearest last.

    The search stops at the first directory, ``path`` included, holding a
    ``.git`` entry.
    """
    if (path / ".git").exists():
        return {}
    ancestors: list[Path] = []
    for parent in path.parents:
        ancestors.append(parent)
        if (parent / ".git").exists():
            break

    merged: dict[str, Any] = {}
    for ancestor in reversed(ancestors):
        merged.update(load_option_file(ancestor / OPTION_FILE_NAME))
    return merged


class Directory:
    """A directory of the definition tree with its (inherited) options."""

    def __init__(self, path: Path, inherited: dict[str, Any] | None = None) -> None:
        self.path = Path(path)
        self._inherited = inherited
        self._own: dict[str, Any] | None = None

    @classmethod
    def open(cls, path: str | Path) -> "Directory":
        directory = Path(path).absolute()
        if not directory.is_dir():
            raise ConfigError(f"Directory not found: {directory}")
        return cls(directory)

    def __str__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return f"Directory({str(self.path)!r})"

    @property
    def canonical_path(self) -> Path:
        return self.path.resolve()

    @property
    def option_file(self) -> Path:
        return self.path / OPTION_FILE_NAME

    def own_options(self) -> dict[str, Any]:
        if self._own is None:
            self._own = load_option_file(self.option_file)
        return self._own

    def options(self) -> dict[str, Any]:
        if self._inherited is None:
            self._inherited = _inherited_options(self.path)
        return {**self._inherited, **self.own_options()}

    def declared_schema(self) -> str | None:
        value = self.own_options().get("schema")
        if value is None:
            return None
        return normalize_identifier(value) or None

    def has_schema(self) -> bool:
        return self.declared_schema() is not None

    def has_host(self) -> bool:
        return bool(self.own_options().get("host"))

    def is_leaf(self) -> bool:
        return self.has_schema()

    def subdirs(self) -> list["Directory"]:
        options = self.options()
        return [
            Directory(child, inherited=options)
            for child in sorted(self.path.iterdir(), key=lambda item: item.name)
            if child.is_dir() and not child.name.startswith(".")
        ]

    def is_instance_with_leaf_subdirs(self, subdirs: list["Directory"] | None = None) -> bool:
        if not self.has_host() or self.has_schema():
            return False
        if subdirs is None:
            subdirs = self.subdirs()
        if not subdirs:
            return False
        return all(subdir.has_schema() for subdir in subdirs)

    def sql_files(self) -> list[Path]:
        return sorted(path for path in self.path.glob("*.sql") if path.is_file())

    def oracle_config(self) -> OracleConfig:
        return oracle_config_from(self.options())

    def sync_options(self) -> SyncOptions:
        return sync_options_from(self.options())

    def delete(self) -> None:
        shutil.rmtree(self.path)
