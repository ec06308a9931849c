"""Placeholder token syntax: ``{{TUCK_SECRET:<ID>}}``.

IDs are upper-case identifiers (``[A-Z][A-Z0-9_]*``, max 100 chars), so the
token never collides with ordinary shell, TOML, or JSON content and is safe
to commit.
"""

from __future__ import annotations

import re

PLACEHOLDER_PREFIX = "{{TUCK_SECRET:"
PLACEHOLDER_SUFFIX = "}}"
PLACEHOLDER_RE = re.compile(r"\{\{TUCK_SECRET:([A-Z][A-Z0-9_]*)\}\}")

MAX_SECRET_NAME_LENGTH = 100
_VALID_NAME = re.compile(r"^[A-Z][A-Z0-9_]*$")


def format_placeholder(secret_id: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{secret_id}{PLACEHOLDER_SUFFIX}"


def parse_placeholder(token: str) -> str | None:
    """Return the secret id if *token* is exactly one placeholder."""
    match = PLACEHOLDER_RE.fullmatch(token)
    return match.group(1) if match else None


def placeholder_spans(content: str) -> list[tuple[int, int]]:
    return [m.span() for m in PLACEHOLDER_RE.finditer(content)]


def find_placeholders(content: str) -> list[str]:
    """Unique secret ids referenced in *content*, in order of first use."""
    seen: dict[str, None] = {}
    for match in PLACEHOLDER_RE.finditer(content):
        seen.setdefault(match.group(1), None)
    return list(seen)


def find_unresolved_placeholders(content: str, available: set[str] | dict) -> list[str]:
    return [name for name in find_placeholders(content) if name not in available]


def has_placeholders(content: str) -> bool:
    return PLACEHOLDER_RE.search(content) is not None


def count_placeholders(content: str) -> int:
    return sum(1 for _ in PLACEHOLDER_RE.finditer(content))


def is_valid_secret_name(name: str) -> bool:
    if not 1 <= len(name) <= MAX_SECRET_NAME_LENGTH:
        return False
    return _VALID_NAME.match(name) is not None


def normalize_secret_name(name: str) -> str:
    """Coerce arbitrary text into a valid secret id."""
    normalized = re.sub(r"[^A-Z0-9_]", "_", name.upper())
    normalized = re.sub(r"^[0-9_]+", "", normalized)
    normalized = re.sub(r"_+", "_", normalized).strip("_")

    if not normalized:
        return "SECRET"
    return normalized[:MAX_SECRET_NAME_LENGTH].rstrip("_")
