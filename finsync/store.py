"""
FinSync - Optimistic Sync Store

PURPOSE: Local mirror of one owner-scoped remote collection
SCOPE: Load, create, update, delete with optimistic apply and rollback
DEPENDENCIES: errors.py, models.py, notifications.py, optimistic.py, session.py

AI CONTEXT: The collection is an immutable tuple replaced on every change, so
derived views can be cached on its identity (see memo.py). Update and delete
apply locally before the remote call and restore the pre-mutation state when
it fails. Create waits for the server because the id is assigned remotely.
Nothing here raises to the caller; every failure becomes a notification.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import (
    Any, Callable, Dict, Generic, List, Mapping, Optional, Protocol, Tuple, Type, TypeVar, Union,
)

from .errors import NotFound, RemoteRejected, SyncError, Unauthenticated, ValidationFailed
from .models import Record
from .notifications import Notifier
from .optimistic import MutationQueue, optimistic_mutation
from .session import Session

logger = logging.getLogger(__name__)

R = TypeVar('R', bound=Record)


class RemoteTable(Protocol):
    async def select(self, filters: Dict[str, Any], order: Optional[str] = None) -> List[Dict[str, Any]]: ...

    async def insert(self, row: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(self, record_id: str, owner_id: str, partial: Dict[str, Any]) -> None: ...

    async def delete(self, record_id: str, owner_id: str) -> None: ...


class StoreState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    LOADING = 'loading'
    READY = 'ready'
    CLOSED = 'closed'


class SyncStore(Generic[R]):
    """Optimistic, rollback-capable mirror of one remote table for the signed-in owner."""

    model: Type[Record] = Record
    entity_name = 'Record'
    entity_plural = 'records'
    order: Optional[str] = None

    def __init__(self, table: RemoteTable, session: Session, notifier: Notifier,
                 model: Optional[Type[R]] = None):
        self.table = table
        self.session = session
        self.notifier = notifier
        if model is not None:
            self.model = model
        self.state = StoreState.UNINITIALIZED
        self._items: Tuple[R, ...] = ()
        self._closed = False
        self._load_generation = 0
        self._queue = MutationQueue()
        self._listeners: List[Callable[[Tuple[R, ...]], None]] = []
        self._unsubscribe_session = session.subscribe(self._on_session_change)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def items(self) -> Tuple[R, ...]:
        return self._items

    @property
    def is_loading(self) -> bool:
        return self.state == StoreState.LOADING

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get(self, record_id: str) -> Optional[R]:
        index = self._index_of(record_id)
        return None if index is None else self._items[index]

    def subscribe(self, listener: Callable[[Tuple[R, ...]], None]) -> Callable[[], None]:
        """Call ``listener`` with the new collection after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self, owner_id: Optional[str] = None) -> None:
        """Fetch every record of the owner. Failure empties the collection and notifies."""
        if self._closed:
            return

        current_owner = self.session.owner_id
        self._load_generation += 1
        generation = self._load_generation

        if not current_owner:
            self._set_items(())
            self.state = StoreState.READY
            if owner_id:
                self._report(Unauthenticated(), 'load')
            return

        owner_id = owner_id or current_owner
        if owner_id != current_owner:
            self._report(Unauthenticated(f"Cannot load {self.entity_plural} of another user."), 'load')
            return

        self.state = StoreState.LOADING
        try:
            rows = await self.table.select({'user_id': owner_id}, order=self.order)
        except RemoteRejected as e:
            if self._is_current_load(generation):
                self._set_items(())
                self._report(e, 'load', title=f"Error loading {self.entity_plural}")
        else:
            if self._is_current_load(generation):
                self._set_items(self._arrange(self._records_from_rows(rows, owner_id)))
                logger.info(f"Loaded {len(self._items)} {self.entity_plural} for {owner_id}")
        finally:
            if self._is_current_load(generation):
                self.state = StoreState.READY

    async def refresh(self) -> None:
        """Full resync, e.g. after the app returns from the background."""
        await self.load()

    def close(self) -> None:
        """Tear down: pending continuations will no longer touch this store."""
        if self._closed:
            return
        self._closed = True
        self._load_generation += 1
        self._unsubscribe_session()
        self._listeners.clear()
        self.state = StoreState.CLOSED

    def _on_session_change(self, previous: Optional[str], current: Optional[str]) -> None:
        # Results of fetches started for the previous owner are discarded.
        self._load_generation += 1
        self._set_items(())
        self.state = StoreState.UNINITIALIZED
        logger.info(f"Purged {self.entity_plural} after session change {previous} -> {current}")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, data: Union[R, Mapping[str, Any]]) -> Optional[R]:
        """Insert remotely, then prepend the stored record. Returns it, or ``None`` on failure."""
        if self._closed:
            return None
        owner_id = self.session.owner_id
        try:
            if not owner_id:
                raise Unauthenticated()
            record = self._coerce_input(data)
            self._validate(record, creating=True)
            row = await self.table.insert(self._insert_row(record, owner_id))
        except SyncError as e:
            self._report(e, 'add')
            return None

        if not self._is_alive(owner_id):
            return None

        created = self.model.from_row(row)
        self._set_items(self._arrange((created,) + self._items))
        logger.info(f"{self.entity_name} {created.id} created")
        self.notifier.success('Success', f"{self.entity_name} added.")
        return created

    async def update(self, record: R) -> bool:
        """Replace locally at once, confirm remotely, restore the snapshot on failure."""
        owner_id = self.session.owner_id
        try:
            if not owner_id:
                raise Unauthenticated()
            self._validate(record, creating=False)
        except SyncError as e:
            self._report(e, 'update')
            return False

        async with self._queue.hold(record.id):
            if not self._is_alive(owner_id):
                return False
            index = self._index_of(record.id)
            if index is None:
                self._report(NotFound(record.id), 'update')
                return False

            previous = self._items[index]
            record = replace(record, owner_id=owner_id, created_at=record.created_at or previous.created_at)
            snapshot = self._items
            items = tuple(self._arrange(snapshot[:index] + (record,) + snapshot[index + 1:]))

            try:
                await self._mutate(
                    lambda: self._remote_update(record, owner_id),
                    snapshot, items, owner_id, record.id, previous, index,
                )
            except SyncError as e:
                self._report(e, 'update')
                return False

        if self._is_alive(owner_id):
            self.notifier.success('Success', f"{self.entity_name} updated.")
        return True

    async def delete(self, record_id: str) -> bool:
        """Remove locally at once, confirm remotely, restore the snapshot on failure."""
        owner_id = self.session.owner_id
        if not owner_id:
            self._report(Unauthenticated(), 'delete')
            return False

        async with self._queue.hold(record_id):
            if not self._is_alive(owner_id):
                return False
            index = self._index_of(record_id)
            if index is None:
                self._report(NotFound(record_id), 'delete')
                return False

            previous = self._items[index]
            snapshot = self._items
            items = snapshot[:index] + snapshot[index + 1:]

            try:
                await self._mutate(
                    lambda: self._remote_delete(record_id, owner_id),
                    snapshot, items, owner_id, record_id, previous, index,
                )
            except SyncError as e:
                self._report(e, 'delete')
                return False

        if self._is_alive(owner_id):
            self.notifier.success('Success', f"{self.entity_name} deleted.")
        return True

    async def _mutate(self, remote_call, snapshot: Tuple[R, ...], items: Tuple[R, ...], owner_id: str,
                      record_id: str, previous: R, index: int) -> None:
        applied = None

        def apply() -> None:
            nonlocal applied
            self._set_items(items)
            applied = self._items

        def revert() -> None:
            if not self._is_alive(owner_id):
                return
            # Untouched since apply: hand back the very same snapshot tuple.
            if self._items is applied:
                self._set_items(snapshot)
            else:
                self._restore_record(record_id, previous, index)
            logger.warning(f"Rolled back {self.entity_name} {record_id}")

        await optimistic_mutation(remote_call, apply, revert)

    def _restore_record(self, record_id: str, previous: R, index: int) -> None:
        """Put one record back when other mutations changed the collection meanwhile."""
        items = list(self._items)
        current = self._index_of(record_id)
        if current is None:
            items.insert(min(index, len(items)), previous)
        else:
            items[current] = previous
        self._set_items(items)

    # ------------------------------------------------------------------
    # Hooks for entity stores
    # ------------------------------------------------------------------

    def validate(self, record: R, creating: bool) -> Tuple[bool, List[str]]:
        return True, []

    def _arrange(self, items) -> Tuple[R, ...]:
        """Local ordering after load, create and update. Keeps the given order by default."""
        return tuple(items)

    def _insert_row(self, record: R, owner_id: str) -> Dict[str, Any]:
        return record.insert_row(owner_id)

    async def _remote_update(self, record: R, owner_id: str) -> None:
        await self.table.update(record.id, owner_id, record.to_row())

    async def _remote_delete(self, record_id: str, owner_id: str) -> None:
        await self.table.delete(record_id, owner_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _coerce_input(self, data: Union[R, Mapping[str, Any]]) -> R:
        if isinstance(data, Record):
            return data
        try:
            return self.model(**self.model._coerce(dict(data)))
        except TypeError as e:
            raise ValidationFailed([f"Invalid {self.entity_name.lower()} fields: {e}"]) from e

    def _validate(self, record: R, creating: bool) -> None:
        try:
            is_valid, errors = self.validate(record, creating)
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationFailed([f"Invalid {self.entity_name.lower()} fields: {e}"]) from e
        if not is_valid:
            raise ValidationFailed(errors)

    def _records_from_rows(self, rows: List[Dict[str, Any]], owner_id: str) -> List[R]:
        records = []
        for row in rows:
            record = self.model.from_row(row)
            if record.owner_id != owner_id:
                logger.warning(f"Dropping {self.entity_name} {record.id} owned by {record.owner_id}")
                continue
            records.append(record)
        return records

    def _index_of(self, record_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == record_id:
                return index
        return None

    def _set_items(self, items) -> None:
        if self._closed:
            return
        self._items = tuple(items)
        for listener in list(self._listeners):
            try:
                listener(self._items)
            except Exception as e:
                logger.error(f"{self.entity_name} listener failed: {e}")

    def _is_alive(self, owner_id: str) -> bool:
        return not self._closed and self.session.owner_id == owner_id

    def _is_current_load(self, generation: int) -> bool:
        return not self._closed and generation == self._load_generation

    def _report(self, error: SyncError, action: str, title: Optional[str] = None) -> None:
        if isinstance(error, RemoteRejected):
            logger.error(f"Error during {self.entity_name.lower()} {action}: {error.message} "
                         f"(status={error.status_code}, retryable={error.retryable})")
        else:
            logger.warning(f"{self.entity_name} {action} refused: {error.message}")
        self.notifier.error(error, title=title)
