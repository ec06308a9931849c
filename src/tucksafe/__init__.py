"""tucksafe: secret scanning, redaction, and an encrypted vault for dotfiles stores."""

__version__ = "0.1.0"
