"""
Teacher verification workflow.

Verifies teacher community membership against a state registry, then asks
an MSR (member support representative) to approve the verification:

1. Open the verification: a uuid7 id, the only place the clock is read.
2. Copy the member identifier: memberId, or memberName + dateOfBirth.
3. Query the state registry.
4. Validate name, date of birth and employment status.
5. Create the approval hook and email the MSR a link embedding its token.
6. Race the approval against its timeout ("1h" unless configured).
7. Finish: approved, or not approved with an error.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from uuid_extensions import uuid7

from pykairos.config import get_settings
from pykairos.core import (
    AwaitHook,
    Call,
    Command,
    Complete,
    CreateHook,
    HookKind,
    StageContext,
)
from pykairos.decorators import stage, step, workflow
from pykairos.models import FatalError
from pykairos.workflows.http import JsonClient
from pykairos.workflows.notify import (
    EMAIL_PATTERN,
    Notification,
    Notifier,
    RecordingNotifier,
    approval_url,
)

logger = logging.getLogger(__name__)


class TeacherVerificationInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    member_id: str | None = None
    member_name: str | None = None
    date_of_birth: str | None = None
    state: str = Field(min_length=1)
    msr_id: str = Field(min_length=1)


class TeacherApproval(BaseModel):
    approved: bool
    comment: str | None = None
    by: str | None = Field(default=None, pattern=EMAIL_PATTERN)


APPROVAL = HookKind(
    name="teacher-verification-approval",
    schema=TeacherApproval,
    marker=":approval",
    default_timeout="1h",
)


# =============================================================================
# Registry
# =============================================================================


class TeacherRegistry(Protocol):
    async def lookup(
        self,
        state: str,
        member_id: str | None,
        member_name: str | None,
        date_of_birth: str | None,
    ) -> dict[str, Any]: ...


_REGISTRY = {
    "12345": {
        "found": True,
        "name": "John Doe",
        "dateOfBirth": "1985-05-15",
        "employmentStatus": "active",
        "school": "Lincoln High School",
        "district": "Springfield School District",
        "licenseNumber": "CA-TEACH-12345",
        "licenseExpiry": "2026-12-31",
    },
    "67890": {
        "found": True,
        "name": "Jane Smith",
        "dateOfBirth": "1990-08-22",
        "employmentStatus": "active",
        "school": "Washington Elementary",
        "district": "Riverside School District",
        "licenseNumber": "CA-TEACH-67890",
        "licenseExpiry": "2027-06-30",
    },
}


class MockTeacherRegistry:
    """Two fixture teachers, looked up by member id or by name + date of birth."""

    async def lookup(
        self,
        state: str,
        member_id: str | None,
        member_name: str | None,
        date_of_birth: str | None,
    ) -> dict[str, Any]:
        if member_id and member_id in _REGISTRY:
            return dict(_REGISTRY[member_id])

        if member_name and date_of_birth:
            for record in _REGISTRY.values():
                if (
                    record["name"].lower() == member_name.lower()
                    and record["dateOfBirth"] == date_of_birth
                ):
                    return dict(record)

        return {
            "found": False,
            "name": member_name,
            "dateOfBirth": date_of_birth,
            "employmentStatus": "unknown",
        }


class HttpTeacherRegistry:
    """Queries ``{registry_url}/{state}`` with the member identifier."""

    def __init__(self, registry_url: str | None = None, client: JsonClient | None = None):
        self.registry_url = (
            registry_url
            or f"{get_settings().app_base_url.rstrip('/')}/api/mocks/teacher-verification/registry"
        ).rstrip("/")
        self._client = client or JsonClient()

    async def lookup(
        self,
        state: str,
        member_id: str | None,
        member_name: str | None,
        date_of_birth: str | None,
    ) -> dict[str, Any]:
        return await self._client.post(
            f"{self.registry_url}/{state}",
            {"memberId": member_id, "memberName": member_name, "dateOfBirth": date_of_birth},
        )


# =============================================================================
# Pure checks
# =============================================================================


def validate_member(
    registry: dict[str, Any] | None,
    member_name: str | None,
    date_of_birth: str | None,
) -> dict[str, Any]:
    """
    Compare a registry record with the identifier the member supplied.

    A name or date of birth that was not supplied counts as a match. The
    member is verified when both match and employment is active.
    """
    if not registry or not registry.get("found"):
        return {
            "verified": False,
            "registryMatch": {
                "found": False,
                "nameMatch": False,
                "dobMatch": False,
                "employmentStatus": "unknown",
                "details": None,
            },
        }

    registry_name = registry.get("name")
    name_match = (
        registry_name is not None and registry_name.lower() == member_name.lower()
        if member_name
        else True
    )
    dob_match = registry.get("dateOfBirth") == date_of_birth if date_of_birth else True
    employment_status = registry.get("employmentStatus") or "unknown"
    is_active = employment_status in ("active", "employed")

    return {
        "verified": name_match and dob_match and is_active,
        "registryMatch": {
            "found": True,
            "nameMatch": name_match,
            "dobMatch": dob_match,
            "employmentStatus": employment_status,
            "details": registry,
        },
    }


def _approval_email(role: str, url: str, details: dict[str, Any]) -> str:
    match = details.get("registryMatch") or {}
    lines = [
        f"Teacher Verification Approval Required - {role}",
        "",
        f"Verification ID: {details.get('verificationId') or 'N/A'}",
        f"Member ID: {details.get('memberId') or 'N/A'}",
        f"Member Name: {details.get('memberName') or 'N/A'}",
        f"State: {details.get('state') or 'N/A'}",
        "",
        "=== REGISTRY MATCH DETAILS ===",
        f"Found: {'Yes' if match.get('found') else 'No'}",
        f"Name Match: {'Yes' if match.get('nameMatch') else 'No'}",
        f"DOB Match: {'Yes' if match.get('dobMatch') else 'No'}",
        f"Employment Status: {match.get('employmentStatus') or 'Unknown'}",
    ]
    if match.get("details"):
        lines += ["", "Registry Details:", json.dumps(match["details"], indent=2)]
    lines += [
        "",
        "Please review the verification details above and approve or reject.",
        "",
        f"Approval URL: {url}",
    ]
    return "\n".join(lines)


# =============================================================================
# Workflow
# =============================================================================


@workflow(name="teacher-verification")
class TeacherVerification:
    """
    Example:
        ```python
        notifier = RecordingNotifier()
        runtime.register(TeacherVerification(MockTeacherRegistry(), notifier))
        run_id = await runtime.start(
            "teacher-verification", {"state": "CA", "msrId": "msr-1", "memberId": "12345"}
        )
        await runtime.join(run_id)
        token = parse_qs(urlparse(notifier.last_url()).query)["token"][0]
        await runtime.resume(token, {"approved": True, "by": "msr@example.com"})
        ```
    """

    input_model = TeacherVerificationInput
    hook_kinds = (APPROVAL,)

    def __init__(
        self,
        registry: TeacherRegistry | None = None,
        notifier: Notifier | None = None,
        base_url: str | None = None,
    ):
        self.registry = registry or MockTeacherRegistry()
        self.notifier = notifier or RecordingNotifier()
        self.base_url = base_url or get_settings().app_base_url

    @step(max_retries=1)
    async def open_verification(self, input: dict) -> dict:
        return {"verificationId": f"teacher-verification:{input['msrId']}:{uuid7().hex}"}

    @step(max_retries=1)
    async def copy_member_identifier(self, input: dict) -> dict:
        if not input.get("memberId") and (
            not input.get("memberName") or not input.get("dateOfBirth")
        ):
            raise FatalError("Either memberId or (memberName + dateOfBirth) is required")
        return {
            "memberId": input.get("memberId"),
            "memberName": input.get("memberName"),
            "dateOfBirth": input.get("dateOfBirth"),
        }

    @step(max_retries=3)
    async def query_state_registry(self, input: dict) -> dict:
        return await self.registry.lookup(
            input["state"], input.get("memberId"), input.get("memberName"), input.get("dateOfBirth")
        )

    @step(max_retries=1)
    async def validate_member_details(self, input: dict) -> dict:
        return validate_member(input["registry"], input.get("memberName"), input.get("dateOfBirth"))

    @step(max_retries=3)
    async def send_approval_request(self, input: dict) -> dict:
        url = approval_url(self.base_url, "/teacher-approve", input["token"])
        details = input["details"]
        await self.notifier.send(
            Notification(
                to=input["to"],
                subject=f"Teacher Verification Approval Required - {details.get('verificationId', '')}",
                body=_approval_email(input["role"], url, details),
                url=url,
                details={**details, "role": input["role"]},
            )
        )
        return {"sent": True, "to": input["to"]}

    @stage
    def begin(self, ctx: StageContext) -> Command:
        return Call(
            self.open_verification,
            {"msrId": ctx.input["msrId"]},
            save_as="verification",
            then="copy_identifier",
        )

    @stage
    def copy_identifier(self, ctx: StageContext) -> Command:
        return Call(
            self.copy_member_identifier,
            {
                "memberId": ctx.input.get("memberId"),
                "memberName": ctx.input.get("memberName"),
                "dateOfBirth": ctx.input.get("dateOfBirth"),
            },
            save_as="identifier",
            then="query_registry",
        )

    @stage
    def query_registry(self, ctx: StageContext) -> Command:
        return Call(
            self.query_state_registry,
            {**ctx.state["identifier"], "state": ctx.input["state"]},
            save_as="registry",
            then="validate_member",
        )

    @stage
    def validate_member(self, ctx: StageContext) -> Command:
        identifier = ctx.state["identifier"]
        return Call(
            self.validate_member_details,
            {
                "memberName": identifier.get("memberName"),
                "dateOfBirth": identifier.get("dateOfBirth"),
                "registry": ctx.state["registry"],
            },
            save_as="validation",
            then="request_approval",
        )

    @stage
    def request_approval(self, ctx: StageContext) -> Command:
        verification_id = ctx.state["verification"]["verificationId"]
        identifier = ctx.state["identifier"]
        validation = ctx.state["validation"]
        token = f"{verification_id}:approval"
        return CreateHook(
            kind=APPROVAL,
            token=token,
            save_as="approval_token",
            then="await_approval",
            notify=Call(
                self.send_approval_request,
                {
                    "token": token,
                    "to": f"msr-{ctx.input['msrId']}@example.com",
                    "role": "teacher_verification",
                    "details": {
                        "verificationId": verification_id,
                        "memberId": identifier.get("memberId"),
                        "memberName": identifier.get("memberName"),
                        "state": ctx.input["state"],
                        "registryMatch": validation["registryMatch"],
                        "validationResult": validation,
                    },
                },
            ),
        )

    @stage
    def await_approval(self, ctx: StageContext) -> Command:
        return AwaitHook(
            token=ctx.state["approval_token"],
            on_timeout={"approved": False, "comment": "Approval timeout"},
            save_as="approval",
            then="finish",
        )

    @stage
    def finish(self, ctx: StageContext) -> Command:
        identifier = ctx.state["identifier"]
        validation = ctx.state["validation"]
        approval = ctx.state["approval"]
        result = {
            "verificationId": ctx.state["verification"]["verificationId"],
            "memberId": identifier.get("memberId"),
            "memberName": identifier.get("memberName"),
            "state": ctx.input["state"],
            "verified": validation["verified"],
            "approved": bool(approval.get("approved")),
            "registryMatch": validation["registryMatch"],
            "approval": approval,
        }
        if not result["approved"]:
            result["error"] = "Verification not approved by MSR"
        return Complete(result)
