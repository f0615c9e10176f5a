"""Nox configuration for the Aurora infrastructure app.

This file defines automated development tasks including linting, testing,
formatting, synthesis and guardrail audits.
"""

import nox

# Python versions to test against
PYTHON_VERSIONS = ["3.11"]

# Default sessions to run when no specific session is requested
nox.options.sessions = ["lint", "test", "coverage"]


def _install(session):
    session.install("-e", ".[test,dev]")


@nox.session(python=PYTHON_VERSIONS)
def lint(session):
    """Run linting with ruff and mypy."""
    _install(session)

    # Run ruff for code quality
    session.run("ruff", "check", "src", "infra", "scripts", "tests")

    # Run mypy for type checking
    session.run("mypy", "src")

    session.log("✅ Linting completed successfully")


@nox.session(python=PYTHON_VERSIONS)
def format_code(session):
    """Format code with black and isort."""
    _install(session)

    session.run("black", "src", "infra", "scripts", "tests")
    session.run("isort", "src", "infra", "scripts", "tests")
    session.run("ruff", "check", "--fix", "src", "infra", "scripts", "tests")

    session.log("✅ Code formatting completed")


@nox.session(python=PYTHON_VERSIONS)
def test(session):
    """Run the test suite with pytest."""
    _install(session)

    session.run(
        "pytest",
        "tests/",
        "-v",
        "--tb=short",
        "--strict-markers",
        *session.posargs,
    )

    session.log("✅ Unit tests completed successfully")


@nox.session(python=PYTHON_VERSIONS)
def coverage(session):
    """Run tests with coverage reporting."""
    _install(session)

    session.run(
        "pytest",
        "tests/",
        "--cov=src",
        "--cov=infra",
        "--cov-report=term-missing",
        "--cov-report=xml:coverage.xml",
        "--cov-fail-under=80",
    )

    session.log("✅ Coverage analysis completed")


@nox.session(python=PYTHON_VERSIONS)
def synth(session):
    """Synthesize both stacks.

    Examples:
      nox -s synth
      nox -s synth -- dev
    """
    _install(session)
    env = session.posargs[0] if session.posargs else "prod"
    session.run("cdk", "synth", "--all", "--context", f"environment={env}", external=True)
    session.log("✅ Synth completed")


@nox.session(python=PYTHON_VERSIONS)
def audit(session):
    """Audit the synthesized templates against the guardrails."""
    _install(session)
    env = session.posargs[0] if session.posargs else "prod"
    session.run("aurora-infra", "audit", "--env", env)
    session.log("✅ Guardrail audit completed")


@nox.session(python=PYTHON_VERSIONS)
def deploy(session):
    """Deploy with guardrails: audit -> synth -> deploy.

    Examples:
      nox -s deploy -- --env dev
      nox -s deploy -- --env prod --yes
    """
    _install(session)
    args = session.posargs or ["--env", "dev"]
    session.run("python", "-m", "scripts.deploy_flow", *args)
    session.log("✅ Deployment flow completed")


@nox.session(python=PYTHON_VERSIONS)
def teardown(session):
    """Teardown CDK stacks after checking deletion safeguards.

    Examples:
      nox -s teardown -- --env dev --yes
    """
    _install(session)
    args = session.posargs or ["--env", "dev"]
    session.run("python", "-m", "scripts.teardown", *args)
    session.log("✅ Teardown completed")


@nox.session(python=PYTHON_VERSIONS)
def clean(session):
    """Clean up build artifacts and cache files."""
    import shutil
    import os

    clean_dirs = [
        ".pytest_cache",
        "__pycache__",
        ".coverage",
        "coverage.xml",
        "cdk.out",
        "dist",
        ".ruff_cache",
        ".mypy_cache",
    ]

    for dir_name in clean_dirs:
        if os.path.exists(dir_name):
            if os.path.isdir(dir_name):
                shutil.rmtree(dir_name)
                session.log(f"🗑️  Removed directory: {dir_name}")
            else:
                os.remove(dir_name)
                session.log(f"🗑️  Removed file: {dir_name}")

    session.log("✅ Cleanup completed")


@nox.session(python=PYTHON_VERSIONS)
def security(session):
    """Run security checks with bandit."""
    _install(session)
    session.install("bandit")

    session.run("bandit", "-r", "src", "infra", "-f", "json")

    session.log("✅ Security checks completed")
