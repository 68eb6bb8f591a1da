"""
Plan and apply a resource graph against the local state.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import SecretAlreadyRevealedError, StalePlanError, StateError
from .graph import Action, ResourceGraph
from .plan import Plan, ResourceChange
from .state import State, StateStore

logger = logging.getLogger(__name__)

# How strongly an action changes a resource, for propagation
_WEIGHT = {
    Action.NO_OP: 0,
    Action.UPDATE: 1,
    Action.CREATE: 2,
    Action.REPLACE: 2,
    Action.DELETE: 2,
}


class ApplyContext:
    """Mutable view of one apply: current records and captured secrets."""

    def __init__(self, identity: Dict[str, str], state: State):
        self.identity = identity
        self.state = state
        self._secrets: Dict[str, Any] = {}

    @property
    def records(self) -> Dict[str, Dict[str, Any]]:
        return self.state.resources

    def capture_secret(self, address: str, secret: Any) -> None:
        self._secrets[address] = secret

    def claim_secret(self, address: str) -> str:
        """
        Reveal the secret issued by a resource during this apply.

        Raises:
            SecretAlreadyRevealedError: If no secret was issued in this run or
                it was already consumed
        """
        secret = self._secrets.get(address)
        if secret is None:
            raise SecretAlreadyRevealedError(
                f"No secret material from {address} is available in this run; "
                "it can only be captured when the key is issued"
            )
        return secret.reveal()


class ProvisioningEngine:
    """Computes plans and applies them, one resource at a time."""

    def __init__(self, graph: ResourceGraph, store: StateStore):
        self.graph = graph
        self.store = store

    def init(self) -> State:
        """Create an empty state file if none exists yet."""
        if self.store.exists():
            state = self.store.load()
            logger.debug(f"Using existing state {state.lineage} serial {state.serial}")
            return state

        state = State()
        self.store.save(state)
        logger.info(f"Initialized state at {self.store.path}")
        return state

    def load_state(self) -> State:
        if not self.store.exists():
            raise StateError(f"No state at {self.store.path}; run 'init' first")
        return self.store.load()

    def plan(self, identity: Dict[str, str], destroy: bool = False) -> Plan:
        """
        Compute the changes needed to converge on the desired resources.

        Reads AWS but never mutates it or the state file.
        """
        state = self.load_state()
        order = self.graph.order()

        if destroy:
            changes = [
                ResourceChange(
                    address=address,
                    action=Action.DELETE,
                    reason="destroy requested",
                    before=state.get(address),
                )
                for address in reversed(order)
                if state.get(address) is not None
            ]
            return Plan(state.lineage, state.serial, dict(identity), changes, destroy=True)

        records = state.resources
        desired: Dict[str, Dict[str, Any]] = {}
        live: Dict[str, Optional[Dict[str, Any]]] = {}
        actions: Dict[str, Tuple[Action, str]] = {}

        for address in order:
            resource = self.graph[address]
            desired[address] = resource.desired(records)
            live[address] = resource.read(records.get(address), desired[address])
            actions[address] = resource.diff(records.get(address), live[address], desired[address])
            logger.debug(f"{address}: {actions[address][0].value} ({actions[address][1]})")

        self._propagate(order, records, actions)

        changes = [
            ResourceChange(
                address=address,
                action=actions[address][0],
                reason=actions[address][1],
                before=live[address] if live[address] is not None else records.get(address),
                after=desired[address],
            )
            for address in order
        ]
        return Plan(state.lineage, state.serial, dict(identity), changes)

    def _propagate(
        self,
        order: List[str],
        records: Dict[str, Dict[str, Any]],
        actions: Dict[str, Tuple[Action, str]]
    ) -> None:
        """Push dependency changes down the graph until nothing moves."""
        changed = True
        while changed:
            changed = False
            for address in order:
                resource = self.graph[address]
                action, _ = actions[address]

                for dependency in resource.depends_on:
                    if not actions[dependency][0].creates:
                        continue
                    wanted = resource.on_dependency_change
                    if wanted is Action.REPLACE and records.get(address) is None:
                        wanted = Action.CREATE
                    if _WEIGHT[wanted] > _WEIGHT[actions[address][0]]:
                        actions[address] = (wanted, f"{dependency} is being {actions[dependency][0].value}d")
                        changed = True

                source = resource.requires_secret_from
                if source and actions[address][0] is not Action.NO_OP and not actions[source][0].creates:
                    reissue = Action.REPLACE if records.get(source) is not None else Action.CREATE
                    actions[source] = (
                        reissue,
                        f"{address} needs secret material that can only be captured when the key is issued",
                    )
                    changed = True

    def apply(self, plan: Plan, identity: Dict[str, str]) -> State:
        """
        Execute a plan. State is saved after every resource, so a failure
        leaves it recording exactly what completed.

        Raises:
            StalePlanError: If state or identity changed since the plan was made
        """
        state = self.load_state()
        if plan.lineage != state.lineage or plan.serial != state.serial:
            raise StalePlanError(
                f"Plan was computed against state serial {plan.serial} "
                f"but the state is now at serial {state.serial}; plan again"
            )
        for key in ("account_id", "region"):
            if plan.identity.get(key) != identity.get(key):
                raise StalePlanError(
                    f"Plan was computed for {key} {plan.identity.get(key)} "
                    f"but the session resolves to {identity.get(key)}"
                )

        context = ApplyContext(identity, state)

        for address in self.graph.reverse_order():
            change = plan.change_for(address)
            if change is None or not change.action.deletes:
                continue
            recorded = state.get(address)
            if recorded is not None:
                logger.info(f"Deleting {address}")
                self.graph[address].delete(recorded)
                state.forget(address)
                self.store.save(state)

        for address in self.graph.order():
            change = plan.change_for(address)
            if change is None or change.action in (Action.NO_OP, Action.DELETE):
                continue

            resource = self.graph[address]
            recorded = state.get(address)
            if change.action.creates or recorded is None:
                logger.info(f"Creating {address}")
                attributes = resource.create(change.after, context)
            else:
                logger.info(f"Updating {address}")
                attributes = resource.update(recorded, change.after, context)

            state.record(address, attributes)
            self.store.save(state)

        return state
