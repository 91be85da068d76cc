from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from enum import Enum


class MessageType(Enum):
    EXECUTE = "execute"
    LIVE_EDIT = "live_edit"
    OUTPUT = "output"
    EXECUTION_COMPLETE = "execution_complete"
    LIVE_RESULT = "live_result"
    ERROR = "error"
    PING = "ping"


@dataclass
class Message:
    id: str
    timestamp: int
    type: MessageType
    data: dict
    block_id: str

    @classmethod
    def new(
        cls,
        type: MessageType,
        data: dict,
        id: str | None = None,
        block_id: str | None = None,
    ) -> Message:
        return cls(
            type=type,
            data=data,
            id=id or str(uuid.uuid4()),
            timestamp=time.time_ns() // 1_000_000,
            block_id=block_id or "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp,
            "block_id": self.block_id,
        }


def parse_frame(raw: str | bytes) -> tuple[str, dict] | None:
    """Decode one client frame into (type, data); None when it is not a message."""
    try:
        obj = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(obj, dict):
        return None
    mtype = obj.get("type")
    if not isinstance(mtype, str) or not mtype:
        return None
    data = obj.get("data")
    return mtype, data if isinstance(data, dict) else {}
