"""
State Storage and Transaction Scopes

Every trading component (bonding market, AMM pool, pair factory, launchpad)
keeps its state as a pydantic record in an injected key/value store. A component
loads its record at the start of an operation and saves it back before making
calls into other components, so a reentrant caller always observes committed
state (including the lock flag).

``atomic()`` wraps a top-level operation: it snapshots every participating
store and ledger and restores the snapshots if the operation raises, so a failed
call never leaves a partial commit behind.
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel

from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class Snapshottable(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...


class StateStore(Snapshottable, Protocol):
    """Key/value persistence for component state records."""

    def get(self, key: str) -> Optional[BaseModel]: ...

    def put(self, key: str, value: BaseModel) -> None: ...

    def __contains__(self, key: str) -> bool: ...


class InMemoryStore:
    """Dictionary-backed StateStore.

    Records are copied on the way in and on the way out, so callers can mutate
    what they load without touching committed state until they ``put`` it back.
    """

    def __init__(self):
        self._data: Dict[str, BaseModel] = {}

    def get(self, key: str) -> Optional[BaseModel]:
        value = self._data.get(key)
        if value is None:
            return None
        return value.model_copy(deep=True)

    def put(self, key: str, value: BaseModel) -> None:
        self._data[key] = value.model_copy(deep=True)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def snapshot(self) -> Dict[str, BaseModel]:
        # Stored records are never mutated in place, a shallow copy is enough
        return dict(self._data)

    def restore(self, snapshot: Dict[str, BaseModel]) -> None:
        self._data = dict(snapshot)


def load(store: StateStore, key: str, model: Type[ModelT]) -> Optional[ModelT]:
    """Fetches a record and checks it has the expected type."""
    value = store.get(key)
    if value is not None and not isinstance(value, model):
        raise TypeError(f"Record {key} holds {type(value).__name__}, expected {model.__name__}")
    return value


@contextmanager
def atomic(*participants: Snapshottable) -> Iterator[None]:
    """Rolls every participant back to its entry state if the block raises."""
    snapshots = [(participant, participant.snapshot()) for participant in participants]
    try:
        yield
    except BaseException:
        for participant, snapshot in reversed(snapshots):
            participant.restore(snapshot)
        logger.debug(f"Rolled back {len(snapshots)} participant(s) after failed operation")
        raise
