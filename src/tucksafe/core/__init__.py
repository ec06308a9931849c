"""Core secret-safety logic for tucksafe."""

from .config import SecurityConfig, load_config, save_config, get_config_value, load_security_config
from .patterns import Severity, Pattern, create_custom_pattern
from .scanner import Finding, scan_content, scan_file, scan_files, should_block
from .vault import SecretsVault, SecretContext, VaultError, VaultCorrupted
from .redactor import redact, hydrate, preview_restoration
from .pipeline import TrackedFile, stage_file, restore_files

__all__ = [
    "SecurityConfig",
    "load_config",
    "save_config",
    "get_config_value",
    "load_security_config",
    "Severity",
    "Pattern",
    "create_custom_pattern",
    "Finding",
    "scan_content",
    "scan_file",
    "scan_files",
    "should_block",
    "SecretsVault",
    "SecretContext",
    "VaultError",
    "VaultCorrupted",
    "redact",
    "hydrate",
    "preview_restoration",
    "TrackedFile",
    "stage_file",
    "restore_files",
]
