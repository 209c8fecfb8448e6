"""Hook record: an addressable, durable suspension point of a run."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pykairos.models.run import _dt, utcnow
from pykairos.models.status import HookState


@dataclass
class Hook:
    """
    A suspension point waiting for an external response.

    Attributes:
        token: Unique string correlating an external callback to this hook.
        run_id: Run that created the hook.
        kind: Name of the HookKind (selects the payload schema).
        stage: Stage that created the hook.
        expires_at: Deadline after which the hook expires, None for no deadline.
        state: PENDING until resolved or expired, exactly once.
        payload: Validated resume payload once RESOLVED.
    """

    token: str
    run_id: str
    kind: str
    stage: str
    expires_at: datetime | None = None
    state: HookState = HookState.PENDING
    payload: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)
    settled_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.state is HookState.PENDING

    def is_due(self, now: datetime | None = None) -> bool:
        """Check if the deadline has passed."""
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "run_id": self.run_id,
            "kind": self.kind,
            "stage": self.stage,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "state": self.state.value,
            "payload": copy.deepcopy(self.payload),
            "created_at": self.created_at.isoformat(),
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Hook:
        return cls(
            token=data["token"],
            run_id=data["run_id"],
            kind=data["kind"],
            stage=data["stage"],
            expires_at=_dt(data.get("expires_at")),
            state=HookState(data["state"]),
            payload=copy.deepcopy(data.get("payload")),
            created_at=_dt(data.get("created_at")) or utcnow(),
            settled_at=_dt(data.get("settled_at")),
        )
