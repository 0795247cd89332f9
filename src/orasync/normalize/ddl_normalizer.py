from __future__ import annotations

import re


# Physical attributes differ between the staging schema and the live one,
# so none of them may reach a table file.
PHYSICAL_CLAUSE_PATTERNS = (
    re.compile(r"(?is)\s+STORAGE\s*\((?:[^)(]+|\([^)(]*\))*\)"),
    re.compile(r"(?is)\s+TABLESPACE\s+(?:\"[^\"]+\"|[A-Z0-9_$#]+)"),
    re.compile(r"(?i)\s+SEGMENT\s+CREATION\s+(?:IMMEDIATE|DEFERRED)"),
    re.compile(r"(?i)\s+(?:PCTFREE|PCTUSED|INITRANS|MAXTRANS)\s+\d+"),
    re.compile(r"(?i)\s+COMPUTE\s+STATISTICS"),
    re.compile(r"(?i)\s+(?:NOCOMPRESS|NOLOGGING|LOGGING)\b"),
)

STRING_LITERAL_PATTERN = re.compile(r"('(?:[^']|'')*')")

LINE_ENDINGS = {"LF": "\n", "CRLF": "\r\n"}


def _strip_physical_clauses(text: str) -> str:
    # Odd parts are string literals (comments, defaults) and stay untouched.
    parts = STRING_LITERAL_PATTERN.split(text)
    for index in range(0, len(parts), 2):
        for pattern in PHYSICAL_CLAUSE_PATTERNS:
            parts[index] = pattern.sub("", parts[index])
    return "".join(parts)


def _compact_lines(text: str) -> list[str]:
    lines: list[str] = []
    for raw in text.split("\n"):
        line = raw.rstrip()
        if not line and lines and not lines[-1]:
            continue
        lines.append(line)
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    return lines


class DdlNormalizer:
    """Turns DBMS_METADATA output into the text stored in a table file.

    The result carries no physical attributes, no trailing whitespace, at
    most one blank line in a row and exactly one final line ending.
    """

    def __init__(self, line_ending: str = "LF") -> None:
        normalized = line_ending.upper()
        if normalized not in LINE_ENDINGS:
            raise ValueError("line_ending must be LF or CRLF.")
        self.line_ending = normalized

    def normalize(self, ddl: str) -> str:
        text = ddl.replace("\r\n", "\n").replace("\r", "\n")
        lines = _compact_lines(_strip_physical_clauses(text))
        if not lines:
            return ""
        lines[0] = lines[0].lstrip()
        newline = LINE_ENDINGS[self.line_ending]
        return newline.join(lines) + newline
