"""
CloudFormation constructs built with troposphere.
"""

from .credentials_stack import CredentialsStackConstruct, build_credentials_template, render_template

__all__ = ["CredentialsStackConstruct", "build_credentials_template", "render_template"]
