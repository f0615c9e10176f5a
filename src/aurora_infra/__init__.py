"""Aurora Infra - production Aurora PostgreSQL platform on AWS CDK.

This package holds the configuration, credential policy, boot script and
guardrail helpers used by the CDK stacks under ``infra/``.
"""

__version__ = "0.1.0"

from .config import InfraConfig
from .exceptions import ConfigurationError, DeletionProtectedError, GuardrailViolation, InfraError

__all__ = [
    "InfraConfig",
    "InfraError",
    "ConfigurationError",
    "DeletionProtectedError",
    "GuardrailViolation",
]
