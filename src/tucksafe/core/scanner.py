"""Secret scanner: find candidate secrets in file content.

Scanning is pure: it never touches the vault. Callers turn findings into
vault entries via the redactor.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .config import SecurityConfig
from .patterns import ALL_SECRET_PATTERNS, Pattern, Severity, is_binary_path
from .placeholders import placeholder_spans

logger = logging.getLogger(__name__)

MAX_FILES_PER_SCAN = 1000
WARN_FILES_THRESHOLD = 100

SCAN_TIMEOUT_SECONDS = 30.0
PATTERN_TIMEOUT_SECONDS = 5.0

MIN_SECRET_LENGTH = 4

EXCLUDED_REASON = "Excluded by exclude_files"


@dataclass
class Finding:
    """One candidate secret occurrence. ``matched_text`` is kept out of repr."""

    pattern_id: str
    pattern_name: str
    severity: Severity
    start: int
    end: int
    matched_text: str = field(repr=False)
    file_path: str = ""
    line: int = 1
    column: int = 1
    placeholder: str = "SECRET"

    @property
    def span(self) -> tuple[int, int]:
        return self.start, self.end

    @property
    def redacted_value(self) -> str:
        return redact_secret(self.matched_text)


@dataclass
class FileScanResult:
    path: str
    display_path: str
    findings: list[Finding] = field(default_factory=list)
    skipped: bool = False
    skip_reason: str | None = None

    @property
    def has_secrets(self) -> bool:
        return bool(self.findings)

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.findings if f.severity == severity)


@dataclass
class ScanSummary:
    results: list[FileScanResult]

    @property
    def total_files(self) -> int:
        return len(self.results)

    @property
    def scanned_files(self) -> int:
        return sum(1 for r in self.results if not r.skipped)

    @property
    def skipped_files(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def files_with_secrets(self) -> int:
        return sum(1 for r in self.results if r.has_secrets)

    @property
    def findings(self) -> list[Finding]:
        return [f for r in self.results for f in r.findings]

    @property
    def total_secrets(self) -> int:
        return len(self.findings)

    @property
    def by_severity(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for f in self.findings:
            counts[f.severity.value] += 1
        return counts


def redact_secret(value: str) -> str:
    """Display stand-in for a secret. Never reveals any of its characters."""
    if not value:
        return "[EMPTY]"
    if "\n" in value:
        first = value.split("\n", 1)[0]
        if first.startswith("-----BEGIN"):
            return first + "\n[REDACTED - Private Key]"
        return "[REDACTED MULTILINE SECRET]"
    if len(value) <= 20:
        return "[REDACTED]"
    if len(value) <= 50:
        return "[REDACTED SECRET]"
    return "[REDACTED LONG SECRET]"


def context_line(content: str, finding: Finding, width: int = 100) -> str:
    """The finding's line with the secret replaced by ``[REDACTED]``."""
    line_start = content.rfind("\n", 0, finding.start) + 1
    line_end = content.find("\n", finding.start)
    if line_end == -1:
        line_end = len(content)
    secret_end = min(finding.end, line_end)
    line = content[line_start:finding.start] + "[REDACTED]" + content[secret_end:line_end]
    if finding.end > line_end:
        # multiline secret: drop whatever follows on the first line
        line = content[line_start:finding.start] + "[REDACTED]"
    line = line.strip()
    if len(line) > width:
        line = line[: width - 3] + "..."
    return line


def collapse_home(path: str) -> str:
    home = str(Path.home())
    if path == home or path.startswith(home + "/"):
        return "~" + path[len(home) :]
    return path


def _position(content: str, index: int) -> tuple[int, int]:
    line = content.count("\n", 0, index) + 1
    column = index - (content.rfind("\n", 0, index) + 1) + 1
    return line, column


def _value_span(match) -> tuple[int, int]:
    """Span of the first non-empty capture group, else the whole match."""
    for group in range(1, (match.re.groups or 0) + 1):
        if match.group(group):
            return match.span(group)
    return match.span()


def _overlaps(start: int, end: int, spans: Iterable[tuple[int, int]]) -> bool:
    return any(start < s_end and s_start < end for s_start, s_end in spans)


def _matches(pattern: Pattern, content: str) -> Iterable:
    """Custom patterns run on the ``regex`` engine, which aborts a runaway match itself."""
    if pattern.custom:
        return pattern.regex.finditer(content, timeout=PATTERN_TIMEOUT_SECONDS)
    return pattern.regex.finditer(content)


def active_patterns(config: SecurityConfig | None = None, patterns: list[Pattern] | None = None) -> list[Pattern]:
    """Builtin (or given) patterns plus custom, minus exclusions, at or above min severity.

    Returned most severe first so overlapping matches are claimed by the
    highest-severity pattern.
    """
    config = config or SecurityConfig()
    base = list(ALL_SECRET_PATTERNS if patterns is None else patterns)
    candidates = base + list(config.custom_patterns)
    excluded = set(config.exclude_patterns)
    selected = [
        p for p in candidates if p.id not in excluded and p.severity.at_least(config.min_severity)
    ]
    return sorted(selected, key=lambda p: p.severity.rank)


def scan_content(
    content: str,
    config: SecurityConfig | None = None,
    file_path: str = "",
    patterns: list[Pattern] | None = None,
) -> list[Finding]:
    """Scan a string for secrets. Returns findings ordered by position."""
    active = active_patterns(config, patterns)
    if not active or not content:
        return []

    reserved = placeholder_spans(content)
    claimed: list[tuple[int, int]] = []
    findings: list[Finding] = []
    scan_started = time.monotonic()

    for pattern in active:
        if time.monotonic() - scan_started > SCAN_TIMEOUT_SECONDS:
            logger.warning("Scan timeout reached for %s; remaining patterns skipped", file_path or "<content>")
            break

        pattern_started = time.monotonic()
        try:
            for match in _matches(pattern, content):
                if time.monotonic() - pattern_started > PATTERN_TIMEOUT_SECONDS:
                    raise TimeoutError(pattern.id)

                start, end = _value_span(match)
                if end - start < MIN_SECRET_LENGTH:
                    continue
                if _overlaps(start, end, reserved) or _overlaps(start, end, claimed):
                    continue

                claimed.append((start, end))
                line, column = _position(content, start)
                findings.append(
                    Finding(
                        pattern_id=pattern.id,
                        pattern_name=pattern.name,
                        severity=pattern.severity,
                        start=start,
                        end=end,
                        matched_text=content[start:end],
                        file_path=file_path,
                        line=line,
                        column=column,
                        placeholder=pattern.placeholder,
                    )
                )
        except TimeoutError:
            logger.warning(
                "Pattern %s timed out on %s; remaining matches skipped", pattern.id, file_path or "<content>"
            )

    findings.sort(key=lambda f: (f.start, f.end))
    return findings


def is_excluded_file(filepath: str, exclude_files: Iterable[str]) -> bool:
    """Match exclusion globs against the full, ``~``-collapsed, and base name forms."""
    candidates = {filepath, collapse_home(filepath), Path(filepath).name}
    return any(fnmatch.fnmatch(c, glob) for glob in exclude_files for c in candidates)


def read_scannable(filepath: str | Path, config: SecurityConfig) -> tuple[FileScanResult, str | None]:
    """Apply file-level checks and read the content.

    Returns the (empty) result and the decoded content, or a skipped result
    and None when the file must not be scanned.
    """
    path = Path(filepath).expanduser()
    result = FileScanResult(path=str(path), display_path=collapse_home(str(path)))

    def skip(reason: str) -> tuple[FileScanResult, None]:
        result.skipped = True
        result.skip_reason = reason
        logger.debug("Skipping %s: %s", result.display_path, reason)
        return result, None

    if is_excluded_file(str(path), config.exclude_files):
        return skip(EXCLUDED_REASON)
    if not path.exists():
        return skip("File not found")
    if path.is_dir():
        return skip("Is a directory")
    if is_binary_path(str(path)):
        return skip("Binary file")

    try:
        size = path.stat().st_size
    except OSError:
        return skip("Cannot read file stats")
    if size > config.max_file_size:
        return skip(f"File too large ({size} bytes > {config.max_file_size} bytes)")

    try:
        content = path.read_bytes().decode("utf-8")
    except OSError:
        return skip("Cannot read file")
    except UnicodeDecodeError:
        return skip("Cannot read file (possibly binary)")

    return result, content


def scan_file(filepath: str | Path, config: SecurityConfig | None = None) -> FileScanResult:
    """Scan one file, reporting it as skipped (with a reason) when it can't be scanned."""
    config = config or SecurityConfig()
    result, content = read_scannable(filepath, config)
    if content is not None:
        result.findings = scan_content(content, config, file_path=result.path)
    return result


def scan_files(filepaths: list[str | Path], config: SecurityConfig | None = None) -> ScanSummary:
    """Scan many files with the configured scanner.

    External scanners (gitleaks, trufflehog) are used when configured and
    installed; otherwise the builtin patterns run.
    """
    config = config or SecurityConfig()
    if len(filepaths) > MAX_FILES_PER_SCAN:
        raise ValueError(
            f"Too many files to scan ({len(filepaths)} > {MAX_FILES_PER_SCAN}). "
            "Scan in smaller batches or add exclude_files rules."
        )
    if len(filepaths) > WARN_FILES_THRESHOLD:
        logger.warning("Scanning %d files may take a while", len(filepaths))

    if config.scanner != "builtin":
        from .external import scan_with_scanner

        return scan_with_scanner([str(p) for p in filepaths], config)

    return ScanSummary(results=[scan_file(p, config) for p in filepaths])


def should_block(findings: Iterable[Finding], config: SecurityConfig | None = None) -> bool:
    """True when blocking is enabled and a finding meets ``min_severity``."""
    config = config or SecurityConfig()
    if not config.block_on_secrets:
        return False
    return any(f.severity.at_least(config.min_severity) for f in findings)
