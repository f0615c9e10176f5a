import random
import string

import pytest

from src.aurora_infra.config import REQUIRED_EXCLUDED_CHARACTERS, PasswordPolicyConfig
from src.aurora_infra.passwords import character_classes, generate_password, validate_password


@pytest.fixture
def admin_policy() -> PasswordPolicyConfig:
    return PasswordPolicyConfig()


def test_sampled_passwords_satisfy_admin_policy(admin_policy):
    rng = random.Random(1234)
    for _ in range(500):
        value = generate_password(admin_policy, rng)

        assert len(value) == 32
        assert not set(value) & set(REQUIRED_EXCLUDED_CHARACTERS)
        assert any(c in string.ascii_lowercase for c in value)
        assert any(c in string.ascii_uppercase for c in value)
        assert any(c in string.digits for c in value)
        assert any(c in string.punctuation for c in value)
        assert validate_password(value, admin_policy) == []


def test_default_random_source(admin_policy):
    assert validate_password(generate_password(admin_policy), admin_policy) == []


def test_excluded_characters_removed_from_classes(admin_policy):
    classes = character_classes(admin_policy)
    assert set(classes) == {"lowercase", "uppercase", "numbers", "punctuation"}
    for c in REQUIRED_EXCLUDED_CHARACTERS:
        assert c not in classes["punctuation"]


def test_excluded_class_never_generated():
    policy = PasswordPolicyConfig(exclude_punctuation=True, password_length=16)
    value = generate_password(policy, random.Random(7))
    assert value.isalnum()
    assert "punctuation" not in character_classes(policy)


def test_validate_password_reports_problems(admin_policy):
    problems = validate_password("short@pw", admin_policy)
    assert any("length" in p for p in problems)
    assert any("excluded" in p for p in problems)
    assert any("missing a numbers" in p for p in problems)
