"""Exception hierarchy for pykairos.

Step failures (RetryableError, FatalError) live in pykairos.models.retry and
travel through the runtime as values. The exceptions here are raised to
callers of the runtime.
"""


class KairosError(Exception):
    """Base class for runtime errors."""


class WorkflowDefinitionError(KairosError):
    """A workflow definition is invalid (unknown stage, bad hook token, ...)."""


class RunNotFoundError(KairosError):
    """No run with the given id exists."""

    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id


class HookNotFoundError(KairosError):
    """
    Resume referenced an unknown, expired or already-resolved hook.

    Surfaced to HTTP callers as 404, never as 500.
    """

    def __init__(self, token: str):
        super().__init__(
            "The approval hook was not found. The workflow may not have reached "
            "the approval point yet, or it may have already timed out."
        )
        self.token = token


class HookPayloadError(KairosError):
    """Resume payload does not match the hook's schema."""

    def __init__(self, token: str, message: str):
        super().__init__(message)
        self.token = token


class NonDeterminismError(KairosError):
    """Replay found a committed step whose input differs from the current call."""


class InvalidInputError(KairosError):
    """A run was started with input its workflow's input model rejects."""

    def __init__(self, workflow_name: str, message: str):
        super().__init__(f"Invalid input for {workflow_name}: {message}")
        self.workflow_name = workflow_name
