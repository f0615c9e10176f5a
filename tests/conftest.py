"""Pytest configuration and shared fixtures for the Aurora infrastructure tests."""

from __future__ import annotations

import os

import pytest
from aws_cdk.assertions import Template

from infra.app import build_app
from src.aurora_infra.config import InfraConfig, get_default_config


@pytest.fixture
def prod_config() -> InfraConfig:
    """Production configuration built from the defaults only."""
    return InfraConfig(**get_default_config("prod"))


@pytest.fixture(scope="session")
def prod_app():
    """The production app, synthesized once for the whole session."""
    return build_app(InfraConfig(**get_default_config("prod")))


@pytest.fixture(scope="session")
def vpc_stack(prod_app):
    return prod_app[1]


@pytest.fixture(scope="session")
def db_stack(prod_app):
    return prod_app[2]


@pytest.fixture(scope="session")
def vpc_template(vpc_stack) -> Template:
    return Template.from_stack(vpc_stack)


@pytest.fixture(scope="session")
def db_template(db_stack) -> Template:
    return Template.from_stack(db_stack)


@pytest.fixture(autouse=True)
def clean_environment():
    """Clean up environment variables after each test."""
    yield
    test_env_vars = ["AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"]
    for var in test_env_vars:
        if var in os.environ:
            del os.environ[var]
