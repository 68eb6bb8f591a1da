"""
Plan artifact: the ordered set of changes computed against one state serial.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass, field

from ..exceptions import StateError
from .graph import Action

PLAN_FORMAT_VERSION = 1


@dataclass
class ResourceChange:
    """Change to one resource."""
    address: str
    action: Action
    reason: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "action": self.action.value,
            "reason": self.reason,
            "before": self.before,
            "after": self.after,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceChange":
        return cls(
            address=data["address"],
            action=Action(data["action"]),
            reason=data.get("reason", ""),
            before=data.get("before"),
            after=data.get("after"),
        )


@dataclass
class Plan:
    """Changes plus the state and identity they were computed against."""
    lineage: str
    serial: int
    identity: Dict[str, str]
    changes: List[ResourceChange] = field(default_factory=list)
    destroy: bool = False

    @property
    def has_changes(self) -> bool:
        return any(c.action is not Action.NO_OP for c in self.changes)

    def change_for(self, address: str) -> Optional[ResourceChange]:
        for change in self.changes:
            if change.address == address:
                return change
        return None

    def summary(self) -> Dict[str, int]:
        """Number of resources to add, change and destroy."""
        counts = {"add": 0, "change": 0, "destroy": 0}
        for change in self.changes:
            if change.action.creates:
                counts["add"] += 1
            if change.action.deletes:
                counts["destroy"] += 1
            if change.action is Action.UPDATE:
                counts["change"] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format_version": PLAN_FORMAT_VERSION,
            "lineage": self.lineage,
            "serial": self.serial,
            "identity": self.identity,
            "destroy": self.destroy,
            "changes": [c.to_dict() for c in self.changes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        if data.get("format_version") != PLAN_FORMAT_VERSION:
            raise StateError(f"Unsupported plan format: {data.get('format_version')}")
        return cls(
            lineage=data["lineage"],
            serial=int(data["serial"]),
            identity=dict(data["identity"]),
            changes=[ResourceChange.from_dict(c) for c in data.get("changes", [])],
            destroy=bool(data.get("destroy", False)),
        )

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)
            f.write("\n")
        os.chmod(path, 0o600)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Plan":
        try:
            with open(path, 'r') as f:
                return cls.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            raise StateError(f"Failed to read plan file {path}: {e}") from e
