"""Exception types raised by the extraction engine.

Per-field extraction misses are never exceptions: a rule that does not match
simply leaves the field absent. Only rejected configurations and malformed
persisted rule sets raise.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """A selector config, feed field map or settings file cannot be used."""


class SelectorSyntaxError(ConfigurationError):
    """A CSS-like selector uses syntax outside the supported grammar."""

    def __init__(self, selector: str, reason: str) -> None:
        super().__init__(f"Invalid selector {selector!r}: {reason}")
        self.selector = selector
        self.reason = reason


class OracleResponseError(ConfigurationError):
    """The AI collaborator returned something that is not a usable config."""


class RuleSetFormatError(ValueError):
    """A persisted rule set does not have the expected shape."""
