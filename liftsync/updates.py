"""Update records exchanged with a meet, and client sequence-gap tracking."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

_U64_MASK = 2**64 - 1


def _require(data: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise ValueError(f"missing field `{key}` in {where}")
    return data[key]


def _unsigned(data: Mapping[str, Any], key: str, where: str) -> int:
    value = _require(data, key, where)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"`{key}` in {where} must be a non-negative integer")
    return value


def _text(data: Mapping[str, Any], key: str, where: str) -> str:
    value = _require(data, key, where)
    if not isinstance(value, str):
        raise ValueError(f"`{key}` in {where} must be a string")
    return value


@dataclass(frozen=True)
class Update:
    """A client's change to one key of the meet state."""

    update_key: str
    update_value: Any
    local_seq_num: int
    after_server_seq_num: int = 0

    def _to_dict(self) -> dict[str, Any]:
        return {
            "update_key": self.update_key,
            "update_value": self.update_value,
            "local_seq_num": self.local_seq_num,
            "after_server_seq_num": self.after_server_seq_num,
        }

    @classmethod
    def _from_dict(cls, data: Any) -> Update:
        if not isinstance(data, Mapping):
            raise ValueError("update must be an object")
        return cls(
            update_key=_text(data, "update_key", "update"),
            update_value=_require(data, "update_value", "update"),
            local_seq_num=_unsigned(data, "local_seq_num", "update"),
            after_server_seq_num=_unsigned(data, "after_server_seq_num", "update"),
        )


@dataclass(frozen=True)
class UpdateWithServerSeq:
    """An update as accepted by the server, stamped with its server sequence number."""

    update: Update
    server_seq_num: int
    source_client_id: str
    source_client_priority: int

    def to_json(self) -> str:
        """Serialise to compact JSON, the form appended to meet storage."""
        return json.dumps(
            {
                "update": self.update._to_dict(),
                "server_seq_num": self.server_seq_num,
                "source_client_id": self.source_client_id,
                "source_client_priority": self.source_client_priority,
            },
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> UpdateWithServerSeq:
        """Parse the JSON produced by :meth:`to_json`; raises ``ValueError`` if malformed."""
        data = json.loads(text)
        if not isinstance(data, Mapping):
            raise ValueError("update record must be an object")
        where = "update record"
        return cls(
            update=Update._from_dict(_require(data, "update", where)),
            server_seq_num=_unsigned(data, "server_seq_num", where),
            source_client_id=_text(data, "source_client_id", where),
            source_client_priority=_unsigned(data, "source_client_priority", where),
        )


@dataclass(frozen=True)
class RecoveryUpdate:
    """An update sent by a client to rebuild server state.

    ``value`` holds the JSON text of the value; ``timestamp`` orders the
    updates and doubles as their local sequence number.
    """

    location: str
    value: str
    timestamp: int

    def to_update(self) -> Update:
        """Convert to an :class:`Update`; unparsable values become ``None``."""
        try:
            value = json.loads(self.value)
        except ValueError:
            value = None
        return Update(
            update_key=self.location,
            update_value=value,
            local_seq_num=self.timestamp & _U64_MASK,
            after_server_seq_num=0,
        )


@runtime_checkable
class UpdateStorage(Protocol):
    """Persistence a meet needs: an append-only update log and CSV publication."""

    async def append_update(self, meet_id: str, update_json: str) -> None:
        """Append one serialised update to the meet's log."""
        ...

    async def store_meet_csv(self, meet_id: str, opl_csv: str, return_email: str) -> None:
        """Store the finished meet's CSV results."""
        ...


class NeedsRecoveryError(Exception):
    """Raised when a meet's state must be rebuilt from client updates."""

    def __init__(self, meet_id: str, last_known_seq: int) -> None:
        super().__init__(
            f"meet {meet_id} needs state recovery (last known seq {last_known_seq})"
        )
        self.meet_id = meet_id
        self.last_known_seq = last_known_seq


@dataclass
class SequenceTracker:
    """Follows each client's local sequence numbers to spot lost updates."""

    expected_client_seq: dict[str, int] = field(default_factory=dict)
    need_consistency_check: bool = False
    gap_count: int = 0

    def __init__(self) -> None:
        self.expected_client_seq = {}
        self.need_consistency_check = False
        self.gap_count = 0

    def _gap(self, message: str) -> bool:
        print(message)
        self.need_consistency_check = True
        self.gap_count += 1
        return True

    def detect_gaps(self, client_id: str, updates: Sequence[Update]) -> bool:
        """Tell whether ``updates`` skip sequence numbers for ``client_id``.

        On a gap the consistency-check flag is raised and the expected
        sequence number is left unchanged; otherwise it advances past the batch.
        """
        if not updates:
            return False

        expected = self.expected_client_seq.get(client_id, 0)
        first = updates[0].local_seq_num
        if expected > 0 and first > expected:
            return self._gap(
                f"Sequence gap detected for client {client_id}: "
                f"expected {expected}, got {first}"
            )

        previous = first
        for update in updates[1:]:
            if update.local_seq_num > previous + 1:
                return self._gap(
                    f"Sequence gap detected within batch for client {client_id}: "
                    f"gap between {previous} and {update.local_seq_num}"
                )
            previous = update.local_seq_num

        self.expected_client_seq[client_id] = updates[-1].local_seq_num + 1
        return False