from __future__ import annotations

import re
import tempfile
from pathlib import Path

SAFE_NAME_PATTERN = re.compile(r"[^A-Za-z0-9_$#.-]+")


class FileStoreError(RuntimeError):
    pass


def safe_name(value: str) -> str:
    cleaned = SAFE_NAME_PATTERN.sub("_", value.strip())
    return cleaned.strip("_") or "unnamed"


def split_statements(text: str) -> list[str]:
    """Split SQL text on ``;`` outside quotes and comments.

    Returned statements carry no terminator and are never empty.
    """
    statements: list[str] = []
    current: list[str] = []
    quote: str | None = None
    index = 0
    length = len(text)

    while index < length:
        char = text[index]
        pair = text[index : index + 2]
        if quote is not None:
            current.append(char)
            if char == quote:
                quote = None
        elif pair == "--":
            end = text.find("\n", index)
            index = length if end < 0 else end
            continue
        elif pair == "/*":
            end = text.find("*/", index + 2)
            index = length if end < 0 else end + 2
            current.append(" ")
            continue
        elif char in {"'", '"'}:
            quote = char
            current.append(char)
        elif char == ";":
            statement = "".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
        else:
            current.append(char)
        index += 1

    tail = "".join(current).strip()
    if tail:
        statements.append(tail)
    return statements


class SqlFileStore:
    """Writes and deletes the ``<table>.sql`` files of one directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, table_name: str) -> Path:
        return self.directory / f"{safe_name(table_name)}.sql"

    def _atomic_write(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            newline="",
            dir=path.parent,
            prefix=".orasync-",
            delete=False,
        ) as handle:
            handle.write(content)
            temp_path = Path(handle.name)
        temp_path.replace(path)

    def write(self, table_name: str, content: str) -> int:
        path = self.path_for(table_name)
        try:
            self._atomic_write(path, content)
        except OSError as exc:
            raise FileStoreError(f"Unable to write to {path}: {exc}") from exc
        return len(content.encode("utf-8"))

    def delete(self, table_name: str) -> None:
        path = self.path_for(table_name)
        try:
            path.unlink()
        except OSError as exc:
            raise FileStoreError(f"Unable to delete {path}: {exc}") from exc
