"""Tests for placeholder substitution."""

from __future__ import annotations

from tucksafe.core.patterns import Severity
from tucksafe.core.placeholders import find_placeholders, format_placeholder
from tucksafe.core.redactor import hydrate, hydrate_with, preview_restoration, redact
from tucksafe.core.scanner import Finding, scan_content

STRIPE = "sk_live_abcdef123456"


def _finding(start, end, content, pattern_id="custom"):
    return Finding(
        pattern_id=pattern_id,
        pattern_name="Custom",
        severity=Severity.HIGH,
        start=start,
        end=end,
        matched_text=content[start:end],
        placeholder="CUSTOM",
    )


class TestRedact:
    def test_stripe_assignment(self, vault):
        content = f"API_KEY={STRIPE}\n"
        result = redact(content, scan_content(content), vault, source="~/.env")

        assert len(result.replacements) == 1
        secret_id = result.replacements[0].secret_id
        assert secret_id.startswith("STRIPE_SECRET_KEY_")
        assert result.content == f"API_KEY={format_placeholder(secret_id)}\n"
        assert STRIPE not in result.content
        assert vault.document.secrets[secret_id].value == STRIPE

    def test_roundtrip_multiple(self, vault):
        content = (
            "export GITHUB_TOKEN=ghp_" + "a" * 36 + "\n"
            "export AWS_KEY=AKIA" + "B" * 16 + "\n"
            f"STRIPE={STRIPE}\n"
        )
        redacted = redact(content, scan_content(content), vault, source="~/.zshrc")
        assert len(redacted.replacements) == 3
        assert [r.line for r in redacted.replacements] == [1, 2, 3]

        hydrated = hydrate(redacted.content, vault)
        assert hydrated.content == content
        assert hydrated.restored == 3
        assert hydrated.complete

    def test_repeated_value_shares_id(self, vault):
        content = f"A={STRIPE}\nB={STRIPE}\n"
        result = redact(content, scan_content(content), vault, source="~/.env")
        assert len(result.replacements) == 2
        assert len(result.secret_ids) == 1
        assert vault.secret_count() == 1

    def test_overlapping_findings_are_dropped(self, vault):
        content = "token=abcdefghijkl"
        findings = [_finding(6, 18, content), _finding(8, 14, content, "inner")]
        result = redact(content, findings, vault, source="x")
        assert len(result.replacements) == 1
        assert result.replacements[0].pattern_id == "custom"

    def test_out_of_range_finding_is_ignored(self, vault):
        content = "short"
        result = redact(content, [_finding(2, 40, "x" * 40)], vault, source="x")
        assert not result.changed
        assert result.content == content

    def test_existing_placeholder_is_not_redacted_again(self, vault):
        content = "KEY={{TUCK_SECRET:EXISTING}}"
        result = redact(content, [_finding(4, len(content), content)], vault, source="x")
        assert not result.changed

    def test_does_not_save_vault(self, vault):
        content = f"API_KEY={STRIPE}\n"
        redact(content, scan_content(content), vault, source="~/.env")
        assert vault.dirty
        assert not vault.path.exists()


class TestHydrate:
    def test_unresolved_left_in_place(self, vault):
        vault.set_secret("KNOWN", "value")
        content = "a={{TUCK_SECRET:KNOWN}} b={{TUCK_SECRET:MISSING}}"
        result = hydrate(content, vault)
        assert result.content == "a=value b={{TUCK_SECRET:MISSING}}"
        assert result.unresolved == ["MISSING"]
        assert result.used == ["KNOWN"]
        assert not result.complete

    def test_counts_every_occurrence(self):
        result = hydrate_with("{{TUCK_SECRET:A}}{{TUCK_SECRET:A}}", {"A": "x"}.get)
        assert result.content == "xx"
        assert result.restored == 2
        assert result.used == ["A"]

    def test_no_placeholders(self):
        result = hydrate_with("plain text", lambda _: "unused")
        assert result.content == "plain text"
        assert result.restored == 0

    def test_malformed_tokens_untouched(self):
        content = "{{TUCK_SECRET:lower}} {{TUCK_SECRET:}}"
        assert hydrate_with(content, lambda _: "x").content == content


def test_preview_restoration(vault):
    vault.set_secret("KNOWN", "value")
    before = vault.document.secrets["KNOWN"].last_used
    content = "{{TUCK_SECRET:KNOWN}} {{TUCK_SECRET:MISSING}} {{TUCK_SECRET:KNOWN}}"
    preview = preview_restoration(content, vault)
    assert preview == {"resolvable": ["KNOWN"], "unresolved": ["MISSING"]}
    assert vault.document.secrets["KNOWN"].last_used == before
    assert find_placeholders(content) == ["KNOWN", "MISSING"]
