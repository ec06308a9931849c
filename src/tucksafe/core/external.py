"""External secret scanners (gitleaks, trufflehog).

Both tools run per file with argument lists (no shell). Their JSON output is
validated and normalized into ``Finding`` objects with character spans, so
the redactor treats them exactly like builtin findings. When the configured
tool is not installed the builtin scanner is used instead.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from typing import Any

from .config import SecurityConfig
from .patterns import Severity
from .placeholders import PLACEHOLDER_PREFIX, normalize_secret_name, placeholder_spans
from .scanner import FileScanResult, Finding, ScanSummary, _overlaps, _position, read_scannable, scan_file

logger = logging.getLogger(__name__)

TOOL_TIMEOUT = 60

_CRITICAL_HINTS = (
    "aws", "gcp", "azure", "private-key", "privatekey", "stripe",
    "github", "gitlab", "npm", "pypi", "jwt", "oauth",
)
_HIGH_HINTS = ("api", "token", "secret", "password", "credential")


def _tool_path(scanner: str, config: SecurityConfig) -> str | None:
    configured = config.gitleaks_path if scanner == "gitleaks" else config.trufflehog_path
    return shutil.which(configured or scanner)


def is_gitleaks_installed(config: SecurityConfig | None = None) -> bool:
    return _tool_path("gitleaks", config or SecurityConfig()) is not None


def is_trufflehog_installed(config: SecurityConfig | None = None) -> bool:
    return _tool_path("trufflehog", config or SecurityConfig()) is not None


def get_available_scanners(config: SecurityConfig | None = None) -> list[str]:
    available = ["builtin"]
    if is_gitleaks_installed(config):
        available.append("gitleaks")
    if is_trufflehog_installed(config):
        available.append("trufflehog")
    return available


def map_rule_severity(rule_id: str) -> Severity:
    """Heuristic severity for an external rule/detector name."""
    lowered = rule_id.lower()
    if any(hint in lowered for hint in _CRITICAL_HINTS):
        return Severity.CRITICAL
    if any(hint in lowered for hint in _HIGH_HINTS):
        return Severity.HIGH
    return Severity.MEDIUM


def _locate(
    content: str, secret: str, line: int | None, taken: set[int], reserved: list[tuple[int, int]]
) -> int | None:
    """Offset of *secret* in *content*, preferring the reported line.

    Occurrences already claimed or inside an existing placeholder are passed over.
    """
    if not secret:
        return None

    def usable(idx: int) -> bool:
        return idx not in taken and not _overlaps(idx, idx + len(secret), reserved)

    def first_from(begin: int) -> int | None:
        idx = content.find(secret, begin)
        while idx != -1 and not usable(idx):
            idx = content.find(secret, idx + 1)
        return idx if idx != -1 else None

    if line and line > 0:
        line_start = 0
        for _ in range(line - 1):
            nxt = content.find("\n", line_start)
            if nxt == -1:
                break
            line_start = nxt + 1
        idx = first_from(line_start)
        if idx is not None:
            return idx
    return first_from(0)


def _normalize(
    content: str,
    filepath: str,
    raw: list[tuple[str, str, str, int | None]],
    config: SecurityConfig,
) -> list[Finding]:
    """Turn (rule_id, description, secret, line) tuples into findings.

    Filtered like builtin findings. ``exclude_patterns`` matches the full or
    the tool-local rule id. Text inside existing placeholders is never reported.
    """
    excluded = set(config.exclude_patterns)
    reserved = placeholder_spans(content)
    findings: list[Finding] = []
    taken: set[int] = set()
    for rule_id, description, secret, line in raw:
        if rule_id in excluded or rule_id.split("-", 1)[-1] in excluded:
            continue
        severity = map_rule_severity(rule_id)
        if not severity.at_least(config.min_severity):
            continue
        if PLACEHOLDER_PREFIX in secret:
            continue
        start = _locate(content, secret, line, taken, reserved)
        if start is None:
            if secret not in content:
                logger.warning("Could not locate %s finding in %s; skipping", rule_id, filepath)
            continue
        taken.add(start)
        line_no, column = _position(content, start)
        findings.append(
            Finding(
                pattern_id=rule_id,
                pattern_name=description or rule_id,
                severity=severity,
                start=start,
                end=start + len(secret),
                matched_text=secret,
                file_path=filepath,
                line=line_no,
                column=column,
                placeholder=normalize_secret_name(rule_id.split("-", 1)[-1]),
            )
        )
    findings.sort(key=lambda f: (f.start, f.end))
    return findings


def _run(args: list[str]) -> str | None:
    try:
        proc = subprocess.run(args, capture_output=True, text=True, timeout=TOOL_TIMEOUT)
    except (subprocess.TimeoutExpired, OSError) as exc:
        logger.warning("%s failed: %s", args[0], exc)
        return None
    if proc.stderr.strip():
        logger.debug("%s stderr: %s", args[0], proc.stderr.strip())
    return proc.stdout


def parse_gitleaks_output(stdout: str) -> list[tuple[str, str, str, int | None]]:
    """Validate gitleaks JSON report output."""
    if not stdout.strip():
        return []
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError:
        logger.warning("Failed to parse gitleaks JSON output")
        return []
    if not isinstance(data, list):
        return []
    raw = []
    for item in data:
        if not isinstance(item, dict) or not isinstance(item.get("RuleID"), str):
            continue
        secret = item.get("Secret") or item.get("Match")
        if not isinstance(secret, str) or not secret:
            continue
        line = item.get("StartLine")
        raw.append(
            (
                f"gitleaks-{item['RuleID']}",
                str(item.get("Description") or item["RuleID"]),
                secret,
                line if isinstance(line, int) else None,
            )
        )
    return raw


def parse_trufflehog_output(stdout: str) -> list[tuple[str, str, str, int | None]]:
    """Validate trufflehog JSON-lines output."""
    raw = []
    for text in stdout.splitlines():
        text = text.strip()
        if not text.startswith("{"):
            continue
        try:
            item: Any = json.loads(text)
        except json.JSONDecodeError:
            continue
        detector = item.get("DetectorName")
        secret = item.get("Raw")
        if not isinstance(detector, str) or not isinstance(secret, str) or not secret:
            continue
        line = None
        fs = ((item.get("SourceMetadata") or {}).get("Data") or {}).get("Filesystem")
        if isinstance(fs, dict) and isinstance(fs.get("line"), int):
            line = fs["line"]
        raw.append((f"trufflehog-{detector}", detector, secret, line))
    return raw


def _scan_external(filepath: str, scanner: str, tool: str, config: SecurityConfig) -> FileScanResult:
    result, content = read_scannable(filepath, config)
    if content is None:
        return result

    if scanner == "gitleaks":
        stdout = _run(
            [
                tool, "detect", "--source", result.path, "--no-git",
                "--report-format", "json", "--report-path", "-", "--exit-code", "0",
            ]
        )
        raw = parse_gitleaks_output(stdout or "")
    else:
        stdout = _run([tool, "filesystem", result.path, "--json", "--no-update"])
        raw = parse_trufflehog_output(stdout or "")

    result.findings = _normalize(content, result.path, raw, config)
    return result


def scan_with_scanner(filepaths: list[str], config: SecurityConfig) -> ScanSummary:
    """Scan with the configured external tool, falling back to builtin."""
    tool = _tool_path(config.scanner, config) if config.scanner in ("gitleaks", "trufflehog") else None
    if tool is None:
        if config.scanner != "builtin":
            logger.warning("%s not found, falling back to built-in scanner", config.scanner)
        return ScanSummary(results=[scan_file(p, config) for p in filepaths])

    return ScanSummary(results=[_scan_external(p, config.scanner, tool, config) for p in filepaths])
