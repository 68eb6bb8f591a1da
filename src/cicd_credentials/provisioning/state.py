"""
Local state file recording the resources this tool manages.

The state file is a single-writer resource. Running two commands against
the same state at once is not supported; operators who share a state file
must serialize runs themselves.
"""

import json
import os
import uuid
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union
from dataclasses import dataclass, field

from ..exceptions import StateError

logger = logging.getLogger(__name__)

STATE_VERSION = 1


@dataclass
class State:
    """Recorded attributes per resource address."""
    lineage: str = field(default_factory=lambda: str(uuid.uuid4()))
    serial: int = 0
    resources: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def get(self, address: str) -> Optional[Dict[str, Any]]:
        return self.resources.get(address)

    def record(self, address: str, attributes: Dict[str, Any]) -> None:
        self.resources[address] = dict(attributes)
        self.serial += 1

    def forget(self, address: str) -> None:
        if address in self.resources:
            del self.resources[address]
            self.serial += 1

    @property
    def empty(self) -> bool:
        return not self.resources

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "lineage": self.lineage,
            "serial": self.serial,
            "resources": self.resources,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "State":
        version = data.get("version")
        if version != STATE_VERSION:
            raise StateError(f"Unsupported state version: {version}")
        return cls(
            lineage=data["lineage"],
            serial=int(data["serial"]),
            resources=dict(data.get("resources", {})),
        )


class StateStore:
    """Reads and atomically writes the state file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> State:
        """
        Load state, returning an empty state if the file does not exist yet.

        Raises:
            StateError: If the file exists but cannot be parsed
        """
        if not self.path.exists():
            return State()

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            return State.from_dict(data)
        except (OSError, ValueError, KeyError) as e:
            raise StateError(f"Failed to read state file {self.path}: {e}") from e

    def save(self, state: State) -> None:
        """Write state via a temporary file so a crash never truncates it."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(state.to_dict(), f, indent=2, sort_keys=True)
                f.write("\n")
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StateError(f"Failed to write state file {self.path}: {e}") from e

        logger.debug(f"Saved state serial {state.serial} to {self.path}")
