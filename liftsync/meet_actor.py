"""A meet's update log and state, driven as an actor over a command queue."""

from __future__ import annotations

import asyncio
import copy
import time
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from liftsync.updates import (
    NeedsRecoveryError,
    RecoveryUpdate,
    SequenceTracker,
    Update,
    UpdateStorage,
    UpdateWithServerSeq,
)

INACTIVITY_RECOVERY_THRESHOLD = 300.0
"""Seconds without updates after which state recovery is requested."""

RELAY_CAPACITY = 32
"""Updates a subscriber may fall behind before the oldest ones are dropped."""


class _Kind(Enum):
    UPDATE = auto()
    PULL = auto()
    STORE_CSV = auto()
    RECOVER = auto()


@dataclass
class _Command:
    kind: _Kind
    args: tuple[Any, ...]
    reply: asyncio.Future[Any]


class MeetActor:
    """Owns one meet's state, its ordered update log and its subscribers."""

    def __init__(self, meet_id: str, storage: UpdateStorage) -> None:
        self.meet_id = meet_id
        self.storage = storage
        self.server_seq = 0
        self.last_update_time = time.monotonic()
        self.metrics: Counter[str] = Counter()
        self._state: dict[str, Any] = {}
        self._updates: list[UpdateWithServerSeq] = []
        self._updates_by_key: dict[str, UpdateWithServerSeq] = {}
        self._tracker = SequenceTracker()
        self._subscribers: list[asyncio.Queue[UpdateWithServerSeq]] = []

    @property
    def need_consistency_check(self) -> bool:
        """Whether a sequence gap has flagged the meet for recovery."""
        return self._tracker.need_consistency_check

    def subscribe(self) -> asyncio.Queue[UpdateWithServerSeq]:
        """Return a queue that receives every update accepted from now on."""
        queue: asyncio.Queue[UpdateWithServerSeq] = asyncio.Queue(maxsize=RELAY_CAPACITY)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[UpdateWithServerSeq]) -> None:
        """Stop relaying updates to ``queue``."""
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _broadcast(self, record: UpdateWithServerSeq) -> None:
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(record)

    def detect_sequence_gaps(self, client_id: str, updates: Iterable[Update]) -> bool:
        """Tell whether ``updates`` skip local sequence numbers for ``client_id``."""
        gap = self._tracker.detect_gaps(client_id, list(updates))
        if gap:
            self.metrics["meet.sequence_gaps"] += 1
        return gap

    def needs_state_recovery(self) -> bool:
        """Tell whether state must be recovered, clearing a pending consistency flag."""
        if self._tracker.need_consistency_check:
            self._tracker.need_consistency_check = False
            return True
        now = time.monotonic()
        inactive = now - self.last_update_time
        if inactive > INACTIVITY_RECOVERY_THRESHOLD:
            print(f"Long inactivity period detected for meet {self.meet_id}: {inactive:.3f}s")
            self.last_update_time = now
            return True
        return False

    async def _accept(self, update: Update, client_id: str, priority: int) -> UpdateWithServerSeq:
        self.server_seq += 1
        record = UpdateWithServerSeq(
            update=update,
            server_seq_num=self.server_seq,
            source_client_id=client_id,
            source_client_priority=priority,
        )
        self._state[update.update_key] = update.update_value
        self._updates_by_key[update.update_key] = record
        self._updates.append(record)
        await self.storage.append_update(self.meet_id, record.to_json())
        return record

    async def handle_update(
        self, client_id: str, priority: int, updates: Iterable[Update]
    ) -> list[tuple[int, int]]:
        """Accept a batch of updates and return ``(seq, seq)`` acknowledgements.

        Raises :class:`NeedsRecoveryError` when a sequence gap is seen or the
        meet is otherwise due for state recovery.
        """
        updates = list(updates)
        self.last_update_time = time.monotonic()
        gaps = self.detect_sequence_gaps(client_id, updates)
        if gaps or self.needs_state_recovery():
            raise NeedsRecoveryError(self.meet_id, self.server_seq)

        acks = []
        for update in updates:
            record = await self._accept(update, client_id, priority)
            self._broadcast(record)
            acks.append((record.server_seq_num, record.server_seq_num))
        self.metrics["meet.updates"] += 1
        return acks

    def get_updates_since(self, since: int) -> list[UpdateWithServerSeq]:
        """Return the accepted updates whose server sequence number exceeds ``since``."""
        return [record for record in self._updates if record.server_seq_num > since]

    def get_state(self) -> dict[str, Any]:
        """Return a copy of the current state, key by key."""
        return copy.deepcopy(self._state)

    async def handle_state_recovery(
        self, client_id: str, priority: int, updates: Iterable[RecoveryUpdate]
    ) -> tuple[int, int]:
        """Rebuild state from a client's updates; return ``(server_seq, applied)``.

        Updates are applied in timestamp order. A key already known before the
        recovery is only overwritten by a client of strictly higher priority.
        Recovered updates are not relayed to subscribers.
        """
        ordered = sorted(updates, key=lambda update: update.timestamp)
        if not ordered:
            return self.server_seq, 0

        original_seq = self.server_seq
        existing_keys = set(self._updates_by_key)
        applied = 0
        for recovery in ordered:
            update = recovery.to_update()
            if update.update_key in existing_keys:
                existing = self._updates_by_key.get(update.update_key)
                if existing is not None and priority <= existing.source_client_priority:
                    continue
            await self._accept(update, client_id, priority)
            applied += 1

        if applied:
            print(
                f"Recovered {applied} updates for meet {self.meet_id} from client "
                f"{client_id}, seq {original_seq} -> {self.server_seq}"
            )
        return self.server_seq, applied

    async def store_csv_data(self, opl_csv: str, return_email: str) -> None:
        """Store the meet's published CSV results."""
        await self.storage.store_meet_csv(self.meet_id, opl_csv, return_email)
        self.metrics["meet.published"] += 1

    async def _dispatch(self, command: _Command) -> Any:
        match command.kind:
            case _Kind.UPDATE:
                return await self.handle_update(*command.args)
            case _Kind.PULL:
                return self.get_updates_since(*command.args)
            case _Kind.STORE_CSV:
                return await self.store_csv_data(*command.args)
            case _Kind.RECOVER:
                return await self.handle_state_recovery(*command.args)
        raise ValueError(f"unknown command {command.kind}")

    async def run(self, commands: asyncio.Queue[_Command | None]) -> None:
        """Process commands one at a time until ``None`` is received."""
        while True:
            command = await commands.get()
            if command is None:
                return
            try:
                result = await self._dispatch(command)
            except Exception as exc:
                if not command.reply.done():
                    command.reply.set_exception(exc)
            else:
                if not command.reply.done():
                    command.reply.set_result(result)


class MeetHandle:
    """Sends commands to a running :class:`MeetActor` and awaits the answers."""

    def __init__(self, actor: MeetActor) -> None:
        self.actor = actor
        self.meet_id = actor.meet_id
        self._commands: asyncio.Queue[_Command | None] = asyncio.Queue()
        self._closed = False
        self._task = asyncio.create_task(actor.run(self._commands))

    @property
    def running(self) -> bool:
        """Whether the actor still accepts commands."""
        return not self._closed and not self._task.done()

    async def _call(self, kind: _Kind, *args: Any) -> Any:
        if not self.running:
            raise RuntimeError(f"meet actor {self.meet_id} is not running")
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._commands.put_nowait(_Command(kind, args, reply))
        return await reply

    async def apply_updates(
        self, client_id: str, priority: int, updates: Iterable[Update]
    ) -> list[tuple[int, int]]:
        """Apply a batch of client updates through the actor."""
        return await self._call(_Kind.UPDATE, client_id, priority, list(updates))

    async def get_updates_since(self, since: int) -> list[UpdateWithServerSeq]:
        """Fetch updates newer than ``since``."""
        return await self._call(_Kind.PULL, since)

    async def store_csv_data(self, opl_csv: str, return_email: str) -> None:
        """Store the meet's CSV results."""
        await self._call(_Kind.STORE_CSV, opl_csv, return_email)

    async def recover_state(
        self, client_id: str, priority: int, updates: Iterable[RecoveryUpdate]
    ) -> tuple[int, int]:
        """Recover state from client updates; return ``(server_seq, applied)``."""
        return await self._call(_Kind.RECOVER, client_id, priority, list(updates))

    def subscribe(self) -> asyncio.Queue[UpdateWithServerSeq]:
        """Return a queue receiving every update the meet accepts from now on."""
        return self.actor.subscribe()

    async def close(self) -> None:
        """Let the actor finish queued commands, then stop it."""
        if self._closed:
            return
        self._closed = True
        self._commands.put_nowait(None)
        await self._task


async def spawn_meet_actor(meet_id: str, storage: UpdateStorage) -> MeetHandle:
    """Start an actor for ``meet_id`` on the running event loop and return its handle."""
    return MeetHandle(MeetActor(meet_id, storage))