"""
Encrypted storage of issued credentials.
"""

from .parameter_store import ParameterStore, SecureParameterResource, build_parameter_resources

__all__ = ["ParameterStore", "SecureParameterResource", "build_parameter_resources"]
