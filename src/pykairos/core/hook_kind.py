"""Hook kinds and token routing.

A HookKind names a family of suspension points (legal approval, clause
validation approval, ...) and carries the pydantic schema resume payloads
must satisfy. Several kinds can coexist in one workflow; resume calls are
routed to the right kind by a marker substring that every token of that
kind carries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from pykairos.core.duration import Duration
from pykairos.core.errors import HookPayloadError, WorkflowDefinitionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HookKind:
    """
    A family of hooks sharing a payload schema.

    Attributes:
        name: Stable identifier, also the key for configured timeouts.
        schema: Pydantic model resume payloads are validated against.
        marker: Substring present in every token of this kind.
        default_timeout: Timeout used when neither the workflow nor the
            settings provide one.
        resumable: False for internal kinds (sleep timers) that only expire.

    Example:
        ```python
        class Approval(BaseModel):
            approved: bool
            comment: str | None = None

        LEGAL = HookKind("legal-approval", Approval, marker=":legal-approval")
        ```
    """

    name: str
    schema: type[BaseModel] | None
    marker: str
    default_timeout: Duration | None = None
    resumable: bool = True

    def owns(self, token: str) -> bool:
        return self.marker in token

    def validate(self, token: str, payload: Any) -> dict[str, Any]:
        """
        Validate a resume payload against this kind's schema.

        Returns:
            The validated payload as a plain dict (unset optional fields dropped).

        Raises:
            HookPayloadError: If the payload does not match the schema.
        """
        if self.schema is None:
            return dict(payload or {})
        try:
            model = self.schema.model_validate(payload)
        except ValidationError as e:
            raise HookPayloadError(token, f"Invalid payload for {self.name}: {e}") from e
        return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class HookCatalog:
    """
    Registry of hook kinds, used to route tokens to their kind.

    Example:
        ```python
        catalog = HookCatalog([LEGAL, CLAUSE_VALIDATION])
        kind = catalog.route("contract:u1:abc:clause-validation-approval")
        ```
    """

    def __init__(self, kinds: list[HookKind] | None = None):
        self._kinds: dict[str, HookKind] = {}
        for kind in kinds or []:
            self.register(kind)

    def register(self, kind: HookKind) -> None:
        existing = self._kinds.get(kind.name)
        if existing is not None and existing != kind:
            raise WorkflowDefinitionError(f"Hook kind {kind.name!r} already registered")
        self._kinds[kind.name] = kind
        logger.debug(f"Registered hook kind: {kind.name} (marker={kind.marker!r})")

    def get(self, name: str) -> HookKind | None:
        return self._kinds.get(name)

    def route(self, token: str) -> HookKind | None:
        """
        Find the resumable kind whose marker occurs in the token.

        The longest matching marker wins, so ":clause-validation-approval"
        beats ":approval" for the same token.
        """
        matches = [k for k in self._kinds.values() if k.resumable and k.owns(token)]
        if not matches:
            return None
        return max(matches, key=lambda k: len(k.marker))

    def __contains__(self, name: str) -> bool:
        return name in self._kinds

    def __iter__(self):
        return iter(self._kinds.values())

    def __len__(self) -> int:
        return len(self._kinds)


SLEEP = HookKind(name="sleep", schema=None, marker=":sleep", resumable=False)
"""Internal kind backing Sleep commands. Never routable from resume calls."""
