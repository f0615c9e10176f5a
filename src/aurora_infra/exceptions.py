"""Custom exceptions for the Aurora infrastructure app.

Defines the exception hierarchy raised while building, auditing and
tearing down the CDK stacks.
"""

from __future__ import annotations

from typing import Any


class InfraError(Exception):
    """Base exception for all infrastructure errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        error_code: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_code = error_code

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ConfigurationError(InfraError, ValueError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, config_key: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key


class GuardrailViolation(InfraError):
    """Raised when a synthesized template breaks an invariant."""

    def __init__(self, message: str, rule: str, resource: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.rule = rule
        self.resource = resource
        self.details["rule"] = rule
        if resource:
            self.details["resource"] = resource


class DeletionProtectedError(InfraError):
    """Raised when a destroy is requested for a protected resource."""

    def __init__(self, message: str, resource_type: str, resource: str, **kwargs):
        super().__init__(message, **kwargs)
        self.resource_type = resource_type
        self.resource = resource
        self.details.update({"resource_type": resource_type, "resource": resource})
