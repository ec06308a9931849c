"""File pipeline: stage tracked files into the store and restore them.

Staging scans a file and then either blocks it, redacts its secrets into the
vault, or copies it as-is. Restoring hydrates placeholders back into
plaintext, in parallel across files, with a single vault load per call.
"""

from __future__ import annotations

import logging
import stat
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .atomic import PRIVATE_FILE_MODE, atomic_write_bytes, atomic_write_text
from .config import SecurityConfig, load_security_config
from .placeholders import has_placeholders, placeholder_spans
from .redactor import Replacement, hydrate, redact
from .scanner import EXCLUDED_REASON, Finding, collapse_home, scan_files, should_block
from .vault import SecretsVault

logger = logging.getLogger(__name__)

DEFAULT_RESTORE_WORKERS = 4


class StageError(Exception):
    """Raised when a file cannot be staged without leaking a secret."""


@dataclass
class TrackedFile:
    """A file known to the manifest: ``source`` on the machine, ``destination`` in the store."""

    source: str
    destination: str
    category: str = "misc"
    templated: bool = False


class StageStatus(str, Enum):
    COPIED = "copied"
    REDACTED = "redacted"
    BLOCKED = "blocked"


@dataclass
class StageResult:
    tracked: TrackedFile
    status: StageStatus
    findings: list[Finding] = field(default_factory=list)
    replacements: list[Replacement] = field(default_factory=list)
    scan_skipped: str | None = None

    @property
    def templated(self) -> bool:
        return self.tracked.templated

    @property
    def written(self) -> bool:
        return self.status != StageStatus.BLOCKED


@dataclass
class FileRestoreResult:
    tracked: TrackedFile
    target: Path
    restored: int = 0
    unresolved: list[str] = field(default_factory=list)
    written: bool = False
    error: str | None = None


@dataclass
class RestoreSummary:
    results: list[FileRestoreResult] = field(default_factory=list)

    @property
    def restored_files(self) -> int:
        return sum(1 for r in self.results if r.written)

    @property
    def failed(self) -> list[FileRestoreResult]:
        return [r for r in self.results if r.error]

    @property
    def unresolved(self) -> dict[str, list[str]]:
        return {str(r.target): r.unresolved for r in self.results if r.unresolved}

    @property
    def ok(self) -> bool:
        return not self.failed and not self.unresolved


def safe_store_path(store_dir: str | Path, relative: str) -> Path:
    """Resolve *relative* inside the store.

    Raises ValueError if the resolved path escapes the store directory (path
    traversal prevention).
    """
    if not relative or Path(relative).is_absolute():
        raise ValueError(f"store path must be relative: {relative!r}")
    base = Path(store_dir).expanduser().resolve()
    resolved = (base / relative).resolve()
    if resolved == base or not str(resolved).startswith(str(base) + "/"):
        raise ValueError(f"store path escapes store directory: {relative!r}")
    return resolved


def _file_mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


def _stale(findings: list[Finding], text: str) -> list[Finding]:
    """Findings whose offsets do not point at their secret in *text*."""
    return [f for f in findings if text[f.start : f.end] != f.matched_text]


def _uncovered(findings: list[Finding], text: str, replacements: list[Replacement]) -> list[Finding]:
    """Findings that neither a replacement nor an existing placeholder covers."""
    covering = [(r.start, r.end) for r in replacements] + placeholder_spans(text)
    return [f for f in findings if not any(s <= f.start and f.end <= e for s, e in covering)]


def stage_file(
    source: str | Path,
    destination: str,
    store_dir: str | Path,
    *,
    vault: SecretsVault | None = None,
    config: SecurityConfig | None = None,
    redact_secrets: bool = False,
    category: str = "misc",
) -> StageResult:
    """Scan *source* and write it to ``<store>/<destination>``.

    With findings: ``redact_secrets`` vaults them and writes placeholders;
    otherwise blocking config stops the write. A file that could not be
    scanned (other than via ``exclude_files``) is blocked too when blocking
    is on. Nothing is written for a blocked file.

    Raises StageError, before anything is written, if redaction would leave
    any finding in plaintext.
    """
    config = config or load_security_config(store_dir)
    target = safe_store_path(store_dir, destination)
    src = Path(source).expanduser()
    if not src.is_file():
        raise FileNotFoundError(f"Source file not found: {src}")

    tracked = TrackedFile(source=collapse_home(str(src)), destination=destination, category=category)
    result = StageResult(tracked=tracked, status=StageStatus.COPIED)

    if config.scan_secrets:
        scanned = scan_files([src], config).results[0]
        if scanned.skipped and scanned.skip_reason != EXCLUDED_REASON:
            result.scan_skipped = scanned.skip_reason
            if config.block_on_secrets:
                result.status = StageStatus.BLOCKED
                logger.warning("Blocked %s: not scanned (%s)", tracked.source, scanned.skip_reason)
                return result
            logger.warning("Staging %s unscanned: %s", tracked.source, scanned.skip_reason)
        result.findings = scanned.findings

    if result.findings and redact_secrets:
        vault = vault or SecretsVault(store_dir)
        # offsets index the same decoded text the scanner saw; no newline translation
        text = src.read_bytes().decode("utf-8")
        if _stale(result.findings, text):
            raise StageError(f"Cannot redact {tracked.source}: file changed while it was being scanned")
        redaction = redact(text, result.findings, vault, source=tracked.source)
        uncovered = _uncovered(result.findings, text, redaction.replacements)
        if uncovered:
            raise StageError(f"Cannot redact {tracked.source}: {len(uncovered)} secret(s) would stay in plaintext")
        # vault first: a staged placeholder must always be resolvable
        vault.save()
        atomic_write_bytes(target, redaction.content.encode("utf-8"), mode=_file_mode(src))
        tracked.templated = True
        result.status = StageStatus.REDACTED
        result.replacements = redaction.replacements
        return result

    if result.findings and should_block(result.findings, config):
        result.status = StageStatus.BLOCKED
        logger.warning("Blocked %s: %d secret(s) found", tracked.source, len(result.findings))
        return result

    if result.findings:
        logger.warning("Staging %s with %d unredacted secret(s)", tracked.source, len(result.findings))
    data = src.read_bytes()
    atomic_write_bytes(target, data, mode=_file_mode(src))
    tracked.templated = has_placeholders(data.decode("utf-8", errors="ignore"))
    return result


def restore_file(
    tracked: TrackedFile,
    store_dir: str | Path,
    vault: SecretsVault,
    *,
    dry_run: bool = False,
) -> FileRestoreResult:
    target = Path(tracked.source).expanduser()
    result = FileRestoreResult(tracked=tracked, target=target)
    try:
        stored = safe_store_path(store_dir, tracked.destination)
        data = stored.read_bytes()
    except (OSError, ValueError) as exc:
        result.error = str(exc)
        return result

    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError:
        content = None

    if content is None or not has_placeholders(content):
        if not dry_run:
            atomic_write_bytes(target, data, mode=_file_mode(stored))
            result.written = True
        return result

    hydrated = hydrate(content, vault)
    result.restored = hydrated.restored
    result.unresolved = hydrated.unresolved
    if hydrated.unresolved:
        logger.warning(
            "%s: %d unresolved placeholder(s): %s",
            collapse_home(str(target)),
            len(hydrated.unresolved),
            ", ".join(hydrated.unresolved),
        )
    if not dry_run:
        # hydrated files hold plaintext secrets
        atomic_write_text(target, hydrated.content, mode=PRIVATE_FILE_MODE)
        result.written = True
    return result


def restore_files(
    tracked: list[TrackedFile],
    store_dir: str | Path,
    vault: SecretsVault | None = None,
    *,
    workers: int = DEFAULT_RESTORE_WORKERS,
    dry_run: bool = False,
) -> RestoreSummary:
    """Restore many files. One failure does not stop the others.

    The vault is loaded once up front; ``last_used`` changes are saved once
    after every file is done (not on dry runs).
    """
    vault = vault or SecretsVault(store_dir)
    vault.load()

    summary = RestoreSummary()
    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        future_to_file = {
            executor.submit(restore_file, item, store_dir, vault, dry_run=dry_run): item for item in tracked
        }
        for future in as_completed(future_to_file):
            item = future_to_file[future]
            try:
                file_result = future.result()
            except OSError as exc:
                file_result = FileRestoreResult(
                    tracked=item, target=Path(item.source).expanduser(), error=str(exc)
                )
            summary.results.append(file_result)

    order = {id(item): i for i, item in enumerate(tracked)}
    summary.results.sort(key=lambda r: order[id(r.tracked)])

    if not dry_run:
        vault.flush()
    return summary
