"""
Resource graph, state and plan/apply engine.
"""

from .engine import ApplyContext, ProvisioningEngine
from .graph import Action, Resource, ResourceGraph
from .plan import Plan, ResourceChange
from .state import State, StateStore

__all__ = [
    "Action",
    "ApplyContext",
    "Plan",
    "ProvisioningEngine",
    "Resource",
    "ResourceChange",
    "ResourceGraph",
    "State",
    "StateStore",
]
