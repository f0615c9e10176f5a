"""Infrastructure modules for the Aurora PostgreSQL platform.

Provides the AWS CDK stacks (network and database) and the app that
composes them.
"""
