"""Substitution engine: swap secrets for placeholders and back.

``redact`` and ``hydrate`` are inverses: for findings that were all vaulted,
``hydrate(redact(content).content).content == content``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from .placeholders import PLACEHOLDER_RE, find_placeholders, format_placeholder, placeholder_spans
from .scanner import Finding
from .vault import SecretContext, SecretsVault

logger = logging.getLogger(__name__)


@dataclass
class Replacement:
    secret_id: str
    placeholder: str
    pattern_id: str
    line: int
    start: int
    end: int


@dataclass
class RedactionResult:
    content: str
    replacements: list[Replacement] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.replacements)

    @property
    def secret_ids(self) -> list[str]:
        return list(dict.fromkeys(r.secret_id for r in self.replacements))


@dataclass
class HydrationResult:
    content: str
    restored: int = 0
    unresolved: list[str] = field(default_factory=list)
    used: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unresolved


def _non_overlapping(findings: Iterable[Finding], content: str) -> list[Finding]:
    """Drop findings that overlap an earlier one or an existing placeholder."""
    taken = placeholder_spans(content)
    kept: list[Finding] = []
    for finding in sorted(findings, key=lambda f: (f.start, -f.end)):
        if finding.start < 0 or finding.end > len(content) or finding.start >= finding.end:
            logger.warning("Finding %s has an out-of-range span; ignored", finding.pattern_id)
            continue
        if any(finding.start < end and start < finding.end for start, end in taken):
            continue
        taken.append((finding.start, finding.end))
        kept.append(finding)
    return kept


def redact(content: str, findings: Iterable[Finding], vault: SecretsVault, source: str) -> RedactionResult:
    """Replace every finding with its placeholder, vaulting the plaintext.

    Ids are minted in file order; replacement runs from the end of the
    content backwards so earlier spans keep their offsets. The vault is
    updated in memory only; the caller saves.
    """
    replacements: list[Replacement] = []
    for finding in _non_overlapping(findings, content):
        secret_id = vault.add_or_update_secret(
            SecretContext(source=source, hint=finding.placeholder, description=finding.pattern_name),
            content[finding.start : finding.end],
        )
        replacements.append(
            Replacement(
                secret_id=secret_id,
                placeholder=format_placeholder(secret_id),
                pattern_id=finding.pattern_id,
                line=finding.line,
                start=finding.start,
                end=finding.end,
            )
        )

    redacted = content
    for r in reversed(replacements):
        redacted = redacted[: r.start] + r.placeholder + redacted[r.end :]
    return RedactionResult(content=redacted, replacements=replacements)


def hydrate_with(content: str, resolve: Callable[[str], str | None]) -> HydrationResult:
    """Replace placeholders using *resolve*; unknown ids stay in place."""
    result = HydrationResult(content=content)
    unresolved: dict[str, None] = {}
    used: dict[str, None] = {}

    def substitute(match) -> str:
        secret_id = match.group(1)
        value = resolve(secret_id)
        if value is None:
            unresolved.setdefault(secret_id, None)
            return match.group(0)
        used.setdefault(secret_id, None)
        result.restored += 1
        return value

    result.content = PLACEHOLDER_RE.sub(substitute, content)
    result.unresolved = list(unresolved)
    result.used = list(used)
    return result


def hydrate(content: str, vault: SecretsVault) -> HydrationResult:
    return hydrate_with(content, vault.resolve_placeholder)


def preview_restoration(content: str, vault: SecretsVault) -> dict[str, list[str]]:
    """Which placeholders in *content* would resolve, without touching ``last_used``."""
    ids = find_placeholders(content)
    return {
        "resolvable": [i for i in ids if vault.has_secret(i)],
        "unresolved": [i for i in ids if not vault.has_secret(i)],
    }
