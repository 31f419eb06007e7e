"""Custom exceptions for the cmdguard validation engine.

This module defines exception types raised outside the policy channel:
- ConfigurationError: Raised when rules or config files are invalid
- StoreError: Raised when the backing key-value store cannot be accessed

Policy violations are never exceptions. They are reported through
ValidationResult.violations.
"""

from typing import Optional


class ConfigurationError(Exception):
    """Raised when configuration is invalid.

    Used for:
    - Invalid YAML syntax in rules or config files
    - Invalid regex patterns in rules
    - Unknown risk levels or actions
    - Malformed configuration structure

    Includes file path and rule name context when available.

    Args:
        message: Error description
        file_path: Path to problematic config file (optional)
        rule_name: Name of the rule that failed to load (optional)

    Example:
        >>> raise ConfigurationError(
        ...     "Invalid regex pattern",
        ...     file_path="rules.yaml",
        ...     rule_name="Script Injection",
        ... )
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        rule_name: Optional[str] = None,
    ):
        """Initialize ConfigurationError with context.

        Args:
            message: Human-readable error description
            file_path: Path to configuration file with error (if applicable)
            rule_name: Rule being loaded when the error occurred (if known)
        """
        self.message = message
        self.file_path = file_path
        self.rule_name = rule_name
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with file/rule context if available."""
        parts = [self.message]
        if self.rule_name:
            parts.append(f"for rule: {self.rule_name}")
        if self.file_path:
            parts.append(f"in file: {self.file_path}")
        return " ".join(parts)

    def __str__(self) -> str:
        """Return formatted error message."""
        return self._format_message()


class StoreError(Exception):
    """Raised when the key-value store fails.

    Preserves the underlying I/O or decode error for debugging. Callers in
    the validation path catch this and degrade (fail-open rate limiting,
    skipped audit writes) instead of propagating it.

    Args:
        message: Error description
        key: Store key being accessed (optional)
        original_error: Underlying exception (optional)
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.key = key
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation with key and original error context."""
        text = self.message
        if self.key:
            text = f"{text} (key: {self.key})"
        if self.original_error:
            text = f"{text} (original: {self.original_error})"
        return text
