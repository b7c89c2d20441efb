"""Log sanitization module for preventing secret leakage.

Parameter bundles and realization plans routinely carry secrets: SQL admin
passwords, storage account keys, SAS tokens, connection strings. This module
redacts them before they reach logs, error messages or rendered plans.

Two layers:
- Pattern-based redaction of free text (log records, exception messages)
- Schema-based redaction of parameter values declared as securestring/secureobject

Design Philosophy:
- Security first: err on side of over-redaction
- Pattern-based: not brittle keyword matching
"""

import logging
import re
from collections.abc import Mapping
from re import Pattern
from typing import Any


class LogSanitizer:
    """Sanitize sensitive data from logs, error messages and plans.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"

    # Order matters: more specific patterns should come first
    SECRET_PATTERNS: dict[str, Pattern] = {
        # Storage connection strings: AccountKey=...;
        "account_key": re.compile(r"(AccountKey=)([^;\s\"']+)", re.IGNORECASE),
        # SAS tokens: ...&sig=...
        "sas_signature": re.compile(r"([?&]sig=)([^&\s\"']+)", re.IGNORECASE),
        "shared_access_key": re.compile(r"(SharedAccessKey=)([^;\s\"']+)", re.IGNORECASE),
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,;\)]+)', re.IGNORECASE),
        "client_secret": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,;\)]+)', re.IGNORECASE
        ),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
    }

    SENSITIVE_KEY_WORDS = ("password", "secret", "token", "accountkey", "connectionstring")

    @classmethod
    def sanitize(cls, message: Any) -> str:
        """Sanitize message by redacting sensitive patterns.

        Examples:
            >>> LogSanitizer.sanitize("Server=x;Password=hunter2;")
            'Server=x;Password=[REDACTED];'
        """
        if not isinstance(message, str):
            message = str(message)

        result = message
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)
        return result

    @classmethod
    def is_sensitive_key(cls, key: str) -> bool:
        normalized = key.lower().replace("_", "").replace("-", "")
        return any(word in normalized for word in cls.SENSITIVE_KEY_WORDS)

    @classmethod
    def display_value(cls, value: Any, secure: bool = False) -> str:
        """Render a value for an error message, hiding secure values."""
        if secure:
            return cls.REDACTED
        return cls.sanitize(repr(value))

    @classmethod
    def redact_parameters(cls, values: Mapping[str, Any], secure_names: set[str]) -> dict[str, Any]:
        """Return a copy of a parameter record with secure values redacted.

        Args:
            values: Parameter name -> value
            secure_names: Names declared with a secure type

        Returns:
            New dictionary; secure and secret-looking values replaced by [REDACTED]
        """
        result = {}
        for key, value in values.items():
            if key in secure_names or (cls.is_sensitive_key(key) and isinstance(value, str) and value):
                result[key] = cls.REDACTED
            else:
                result[key] = value
        return result


class SanitizingFilter(logging.Filter):
    """Logging filter that redacts secrets from every record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            record.msg = LogSanitizer.sanitize(record.getMessage())
            record.args = None
        else:
            record.msg = LogSanitizer.sanitize(record.msg)
        return True


def install_log_sanitizer(logger: logging.Logger | None = None) -> SanitizingFilter:
    """Attach a SanitizingFilter to every handler of ``logger`` (root by default)."""
    target = logger or logging.getLogger()
    sanitizing_filter = SanitizingFilter()
    for handler in target.handlers:
        if not any(isinstance(f, SanitizingFilter) for f in handler.filters):
            handler.addFilter(sanitizing_filter)
    return sanitizing_filter


__all__ = ["LogSanitizer", "SanitizingFilter", "install_log_sanitizer"]
