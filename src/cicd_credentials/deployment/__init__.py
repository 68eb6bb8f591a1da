"""
Deployment orchestration for CI/CD credentials.
"""

from .orchestrator import (
    DeploymentOrchestrator,
    DeploymentPhase,
    DeploymentResult,
    build_resource_graph,
)

__all__ = [
    "DeploymentOrchestrator",
    "DeploymentPhase",
    "DeploymentResult",
    "build_resource_graph",
]
