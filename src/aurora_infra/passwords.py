"""Local model of the Secrets Manager password generation policy.

Secrets Manager generates the administrative password itself; this module
mirrors its ``GenerateSecretString`` rules so the policy can be checked
and sampled without touching AWS (e.g. to seed a manual rotation).
"""

from __future__ import annotations

import random
import secrets
import string

from .config import PasswordPolicyConfig
from .exceptions import ConfigurationError


def character_classes(policy: PasswordPolicyConfig) -> dict[str, str]:
    """Return the included character classes with excluded characters removed."""
    classes = {
        "lowercase": "" if policy.exclude_lowercase else string.ascii_lowercase,
        "uppercase": "" if policy.exclude_uppercase else string.ascii_uppercase,
        "numbers": "" if policy.exclude_numbers else string.digits,
        "punctuation": "" if policy.exclude_punctuation else string.punctuation,
    }
    filtered = {}
    for name, chars in classes.items():
        allowed = "".join(c for c in chars if c not in policy.exclude_characters)
        if allowed:
            filtered[name] = allowed
    return filtered


def generate_password(policy: PasswordPolicyConfig, rng: random.Random | None = None) -> str:
    """Generate a password honouring ``policy``.

    Args:
        policy: Password generation policy
        rng: Optional random source (defaults to the OS CSPRNG)

    Returns:
        A password of ``policy.password_length`` characters
    """
    rng = rng or secrets.SystemRandom()
    classes = character_classes(policy)
    if not classes:
        raise ConfigurationError("Password policy leaves no usable characters", config_key="password_policy")

    chars: list[str] = []
    if policy.require_each_included_type:
        if policy.password_length < len(classes):
            raise ConfigurationError(
                f"Password length {policy.password_length} cannot hold one of each of {len(classes)} classes",
                config_key="password_policy.password_length",
            )
        chars.extend(rng.choice(pool) for pool in classes.values())

    alphabet = "".join(classes.values())
    chars.extend(rng.choice(alphabet) for _ in range(policy.password_length - len(chars)))
    rng.shuffle(chars)
    return "".join(chars)


def validate_password(value: str, policy: PasswordPolicyConfig) -> list[str]:
    """Check ``value`` against ``policy`` and return the list of problems."""
    problems = []
    if len(value) != policy.password_length:
        problems.append(f"length {len(value)} != {policy.password_length}")

    excluded = sorted({c for c in value if c in policy.exclude_characters})
    if excluded:
        problems.append(f"contains excluded characters {excluded!r}")

    if policy.require_each_included_type:
        for name, pool in character_classes(policy).items():
            if not any(c in pool for c in value):
                problems.append(f"missing a {name} character")
    return problems
