"""
Resource graph: idempotent resource tasks with explicit dependencies.
"""

from abc import ABC, abstractmethod
from enum import Enum
from graphlib import TopologicalSorter, CycleError
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import ConflictError


class Action(Enum):
    """Change a plan applies to one resource."""
    NO_OP = "no-op"
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"

    @property
    def creates(self) -> bool:
        return self in (Action.CREATE, Action.REPLACE)

    @property
    def deletes(self) -> bool:
        return self in (Action.REPLACE, Action.DELETE)


class Resource(ABC):
    """
    One node of the provisioning graph.

    Subclasses describe how to read, create, update and delete a single
    AWS object. Every method must be safe to re-run: reading never mutates,
    and delete tolerates an object that is already gone.
    """

    #: Unique key of the resource in state and plans
    address: str = ""

    #: Addresses this resource needs to exist first
    depends_on: Tuple[str, ...] = ()

    #: Action taken when a dependency is created or replaced
    on_dependency_change: Action = Action.REPLACE

    #: Attributes whose change forces a replacement instead of an update
    replace_on: Tuple[str, ...] = ()

    #: Attributes compared to decide whether an update is needed
    compare: Tuple[str, ...] = ()

    #: Whether an untracked object found in AWS is overwritten rather than rejected
    adopt_existing: bool = False

    #: Dependency whose one-shot secret must be available when this resource is written
    requires_secret_from: Optional[str] = None

    @abstractmethod
    def desired(self, records: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """Attributes this resource should have, given the current records."""

    @abstractmethod
    def read(self, recorded: Optional[Dict[str, Any]], desired: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Live attributes from AWS, or None if the object does not exist."""

    @abstractmethod
    def create(self, desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        """Create the object and return the attributes to record in state."""

    def update(self, recorded: Dict[str, Any], desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        """Update the object in place and return the attributes to record."""
        raise NotImplementedError(f"{self.address} cannot be updated in place")

    @abstractmethod
    def delete(self, recorded: Dict[str, Any]) -> None:
        """Delete the object; succeed silently if it is already gone."""

    def diff(
        self,
        recorded: Optional[Dict[str, Any]],
        live: Optional[Dict[str, Any]],
        desired: Dict[str, Any]
    ) -> Tuple[Action, str]:
        """
        Decide the action needed to move from recorded/live to desired.

        Returns:
            Tuple of (action, human readable reason)

        Raises:
            ConflictError: If the object exists in AWS but not in state
        """
        if recorded is None:
            if live is not None and not self.adopt_existing:
                raise ConflictError(
                    f"{self.address}: {self.describe(desired)} already exists in AWS "
                    "but is not tracked in state. Import or remove it manually."
                )
            if live is not None:
                return Action.UPDATE, "exists outside of state and will be overwritten"
            return Action.CREATE, "not yet created"

        for key in self.replace_on:
            if recorded.get(key) != desired.get(key):
                return Action.REPLACE, f"{key} changes from {recorded.get(key)!r} to {desired.get(key)!r}"

        if live is None:
            return Action.CREATE, "recorded in state but missing in AWS"

        changed = [key for key in self.compare if live.get(key) != desired.get(key)]
        if changed:
            return Action.UPDATE, f"{', '.join(changed)} changed"

        return Action.NO_OP, "up to date"

    def describe(self, attributes: Dict[str, Any]) -> str:
        """Short label for messages."""
        return self.address


class ResourceGraph:
    """Directed acyclic graph of resources executed in topological order."""

    def __init__(self, resources: Optional[List[Resource]] = None):
        self._resources: Dict[str, Resource] = {}
        for resource in resources or []:
            self.add(resource)

    def add(self, resource: Resource) -> None:
        if resource.address in self._resources:
            raise ValueError(f"Duplicate resource address: {resource.address}")
        self._resources[resource.address] = resource

    def __getitem__(self, address: str) -> Resource:
        return self._resources[address]

    def __contains__(self, address: str) -> bool:
        return address in self._resources

    def __len__(self) -> int:
        return len(self._resources)

    def order(self) -> List[str]:
        """
        Addresses in dependency order.

        Raises:
            ValueError: If a dependency is unknown or the graph has a cycle
        """
        sorter: TopologicalSorter = TopologicalSorter()
        for address, resource in self._resources.items():
            for dependency in resource.depends_on:
                if dependency not in self._resources:
                    raise ValueError(f"{address} depends on unknown resource {dependency}")
            sorter.add(address, *resource.depends_on)

        try:
            return list(sorter.static_order())
        except CycleError as e:
            raise ValueError(f"Dependency cycle between resources: {e.args[1]}") from e

    def reverse_order(self) -> List[str]:
        return list(reversed(self.order()))

    def dependents(self, address: str) -> List[str]:
        """Direct dependents of a resource."""
        return [a for a, r in self._resources.items() if address in r.depends_on]
