"""
Contract review workflow.

Drafts a contract and walks it through up to three human gates, each a
separate hook kind with its own schema and timeout:

- clause validation approval, only when clause validation flags a
  high-severity issue or a missing clause; a rejection fails the run
- contract manager review, only for contracts a requester initiated; a
  rejection (optionally with edits, which produce a redline) ends the run
  with an error result
- legal approval, always; a rejection or timeout ends the run with an
  error result

Approved contracts are sent to the counterparty and archived.
"""

from __future__ import annotations

import logging
import random
import string
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pykairos.config import get_settings
from pykairos.core import (
    AwaitHook,
    Call,
    Command,
    Complete,
    CreateHook,
    Fail,
    HookKind,
    StageContext,
)
from pykairos.decorators import stage, step, workflow
from pykairos.workflows.notify import (
    EMAIL_PATTERN,
    Notification,
    Notifier,
    RecordingNotifier,
    approval_url,
)

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Party(_CamelModel):
    name: str
    address: str | None = None


class ContractInput(_CamelModel):
    requester_id: str = Field(min_length=1)
    requester_role: Literal["requester", "contract_manager", "legal"]
    contract_type: str = Field(min_length=1)
    jurisdiction: str = Field(min_length=1)
    product: str | None = None
    parties: dict[str, Party] = Field(default_factory=dict)
    key_terms: dict[str, Any] = Field(default_factory=dict)


class ClauseApproval(_CamelModel):
    approved: bool
    comment: str | None = None
    by: str | None = Field(default=None, pattern=EMAIL_PATTERN)


class Edit(_CamelModel):
    section: str
    original: str
    revised: str
    reason: str


class ManagerReview(ClauseApproval):
    edits: list[Edit] | None = None


class RedlineSuggestion(_CamelModel):
    clause: str
    change: str
    reason: str


class LegalApproval(ClauseApproval):
    redline_suggestions: list[RedlineSuggestion] | None = None


CLAUSE_VALIDATION = HookKind(
    name="clause-validation-approval",
    schema=ClauseApproval,
    marker=":clause-validation-approval",
    default_timeout="2h",
)
MANAGER_REVIEW = HookKind(
    name="manager-review",
    schema=ManagerReview,
    marker=":manager-review",
    default_timeout="1h",
)
LEGAL_APPROVAL = HookKind(
    name="legal-approval",
    schema=LegalApproval,
    marker=":legal-approval",
    default_timeout="2h",
)


# =============================================================================
# Services
# =============================================================================


class ContractServices(Protocol):
    async def check_policy(self, persona: str, action: str) -> dict[str, Any]: ...

    async def draft(self, request: dict[str, Any]) -> dict[str, Any]: ...

    async def extract(self, contract_text: str) -> dict[str, Any]: ...

    async def validate_clauses(
        self, contract_text: str, contract_type: str, jurisdiction: str
    ) -> dict[str, Any]: ...

    async def detect_risks(self, contract_text: str, jurisdiction: str) -> dict[str, Any]: ...

    async def redline(
        self, original_text: str, revised_text: str, reason_codes: list[str]
    ) -> dict[str, Any]: ...

    async def archive(
        self, contract_id: str, final_version: str, metadata: dict[str, Any]
    ) -> dict[str, Any]: ...


_PERMISSIONS = {
    "requester": {"draft", "view"},
    "contract_manager": {"draft", "view", "review", "edit"},
    "legal": {"view", "review", "approve"},
}

_REQUIRED_CLAUSES = {
    "nda": ["confidentiality", "term", "governing law"],
    "msa": ["scope of services", "payment terms", "limitation of liability", "governing law"],
}
_DEFAULT_CLAUSES = ["term", "payment terms", "governing law"]
_DATA_PROTECTION_JURISDICTIONS = {"eu", "uk", "european union", "united kingdom"}


def required_clauses(contract_type: str, jurisdiction: str) -> list[str]:
    clauses = list(_REQUIRED_CLAUSES.get(contract_type.lower(), _DEFAULT_CLAUSES))
    if jurisdiction.lower() in _DATA_PROTECTION_JURISDICTIONS:
        clauses.append("data protection")
    return clauses


class MockContractServices:
    """
    Template-based stand-ins for the drafting and analysis services.

    Args:
        omit_clauses: Clause headings left out of drafts, to exercise the
            clause validation gate.
        risks: Risks reported by detect_risks.
    """

    def __init__(
        self,
        omit_clauses: tuple[str, ...] = (),
        risks: list[dict[str, Any]] | None = None,
    ):
        self.omit_clauses = {c.lower() for c in omit_clauses}
        self.risks = risks if risks is not None else [
            {
                "type": "liability",
                "severity": "medium",
                "description": "Liability cap below annual contract value",
            }
        ]
        self.archived: dict[str, dict[str, Any]] = {}

    async def check_policy(self, persona: str, action: str) -> dict[str, Any]:
        allowed = action in _PERMISSIONS.get(persona, set())
        result: dict[str, Any] = {"allowed": allowed, "persona": persona, "action": action}
        if not allowed:
            result["reason"] = f"Role {persona} is not permitted to {action} contracts."
        return result

    async def draft(self, request: dict[str, Any]) -> dict[str, Any]:
        parties = request.get("parties") or {}
        names = [p.get("name", "") for p in parties.values()] or ["Party A", "Party B"]
        clauses = required_clauses(request["contractType"], request["jurisdiction"])
        sections = [
            f"{i}. {clause.title()}\nStandard {clause} provisions apply."
            for i, clause in enumerate(
                (c for c in clauses if c not in self.omit_clauses), start=1
            )
        ]
        header = (
            f"{request['contractType'].upper()} AGREEMENT\n"
            f"Between {' and '.join(names)}\n"
            f"Jurisdiction: {request['jurisdiction']}\n"
        )
        if request.get("product"):
            header += f"Product: {request['product']}\n"
        return {"contractText": header + "\n" + "\n\n".join(sections)}

    async def extract(self, contract_text: str) -> dict[str, Any]:
        lines = contract_text.splitlines()
        parties = lines[1].removeprefix("Between ").split(" and ") if len(lines) > 1 else []
        return {
            "contractType": lines[0].removesuffix(" AGREEMENT") if lines else None,
            "parties": parties,
            "sections": sum(1 for line in lines if line[:1].isdigit()),
        }

    async def validate_clauses(
        self, contract_text: str, contract_type: str, jurisdiction: str
    ) -> dict[str, Any]:
        required = required_clauses(contract_type, jurisdiction)
        text = contract_text.lower()
        present = [c for c in required if c in text]
        missing = [c for c in required if c not in text]
        issues = [
            {"clause": c, "severity": "high", "message": f"Required clause missing: {c}"}
            for c in missing
        ]
        return {
            "required": required,
            "present": present,
            "missing": missing,
            "issues": issues,
            "needsApproval": any(i["severity"] == "high" for i in issues) or bool(missing),
        }

    async def detect_risks(self, contract_text: str, jurisdiction: str) -> dict[str, Any]:
        return {"risks": [dict(r) for r in self.risks], "jurisdiction": jurisdiction}

    async def redline(
        self, original_text: str, revised_text: str, reason_codes: list[str]
    ) -> dict[str, Any]:
        return {
            "changes": len(reason_codes),
            "reasonCodes": reason_codes,
            "identical": original_text == revised_text,
        }

    async def archive(
        self, contract_id: str, final_version: str, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        self.archived[contract_id] = {"finalVersion": final_version, "metadata": metadata}
        return {"archived": True, "location": f"archive://contracts/{contract_id}"}


def _counterparty_email(parties: dict[str, Any]) -> str:
    name = (parties.get("party2") or {}).get("name")
    if not name:
        return "counterparty@example.com"
    return f"{'-'.join(name.lower().split())}@example.com"


# =============================================================================
# Workflow
# =============================================================================


@workflow(name="contract-review")
class ContractReview:
    """
    Example:
        ```python
        runtime.register(ContractReview(MockContractServices(), RecordingNotifier()))
        run_id = await runtime.start("contract-review", {
            "requesterId": "u1", "requesterRole": "contract_manager",
            "contractType": "NDA", "jurisdiction": "US",
        })
        run = await runtime.join(run_id)   # suspended on legal approval
        await runtime.resume(f"{contract_id}:legal-approval", {"approved": True})
        ```
    """

    input_model = ContractInput
    hook_kinds = (CLAUSE_VALIDATION, MANAGER_REVIEW, LEGAL_APPROVAL)

    def __init__(
        self,
        services: ContractServices | None = None,
        notifier: Notifier | None = None,
        base_url: str | None = None,
        approver_domain: str = "example.com",
    ):
        self.services = services or MockContractServices()
        self.notifier = notifier or RecordingNotifier()
        self.base_url = base_url or get_settings().app_base_url
        self.approver_domain = approver_domain

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    @step(max_retries=1)
    async def open_contract(self, input: dict) -> dict:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
        return {"contractId": f"contract:{input['requesterId']}:{suffix}"}

    @step(max_retries=2)
    async def check_policy_compliance(self, input: dict) -> dict:
        return await self.services.check_policy(input["persona"], input["action"])

    @step(max_retries=3)
    async def draft_contract(self, input: dict) -> dict:
        return await self.services.draft(input)

    @step(max_retries=3)
    async def extract_structured_data(self, input: dict) -> dict:
        return await self.services.extract(input["contractText"])

    @step(max_retries=3)
    async def validate_contract_clauses(self, input: dict) -> dict:
        return await self.services.validate_clauses(
            input["contractText"], input["contractType"], input["jurisdiction"]
        )

    @step(max_retries=3)
    async def detect_contract_risks(self, input: dict) -> dict:
        return await self.services.detect_risks(input["contractText"], input["jurisdiction"])

    @step(max_retries=2)
    async def generate_redline(self, input: dict) -> dict:
        return await self.services.redline(
            input["originalText"], input["revisedText"], input["reasonCodes"]
        )

    @step(max_retries=3)
    async def send_approval_request(self, input: dict) -> dict:
        url = approval_url(self.base_url, "/contracts/approve", input["token"])
        details = input["details"]
        role = input["role"]
        body = (
            f"Contract {details['contractId']} ({details.get('contractType')}) "
            f"is waiting for {role} review.\n\nReview it here: {url}"
        )
        await self.notifier.send(
            Notification(
                to=input["to"],
                subject=f"Contract Approval Required - {role}",
                body=body,
                url=url,
                details={**details, "role": role},
            )
        )
        return {"sent": True, "to": input["to"]}

    @step(max_retries=3)
    async def archive_contract(self, input: dict) -> dict:
        return await self.services.archive(
            input["contractId"], input["finalVersion"], input["metadata"]
        )

    # -------------------------------------------------------------------------
    # Command builders
    # -------------------------------------------------------------------------

    def _contract_id(self, ctx: StageContext) -> str:
        return ctx.state["contract"]["contractId"]

    def _details(self, ctx: StageContext, *extra: str) -> dict[str, Any]:
        details = {
            "contractId": self._contract_id(ctx),
            "contractType": ctx.input["contractType"],
            "draft": ctx.state["draft"]["contractText"],
        }
        for key in extra:
            if key in ctx.state:
                details[key] = ctx.state[key]
        return details

    def _gate(
        self,
        ctx: StageContext,
        kind: HookKind,
        to: str,
        role: str,
        save_as: str,
        then: str,
        *extra: str,
    ) -> CreateHook:
        token = f"{self._contract_id(ctx)}{kind.marker}"
        return CreateHook(
            kind=kind,
            token=token,
            save_as=save_as,
            then=then,
            notify=Call(
                self.send_approval_request,
                {"token": token, "to": to, "role": role, "details": self._details(ctx, *extra)},
            ),
        )

    def _detect_risks(self, ctx: StageContext) -> Call:
        return Call(
            self.detect_contract_risks,
            {
                "contractText": ctx.state["draft"]["contractText"],
                "jurisdiction": ctx.input["jurisdiction"],
            },
            save_as="risks",
            then="manager_gate",
        )

    def _legal_gate(self, ctx: StageContext) -> CreateHook:
        return self._gate(
            ctx,
            LEGAL_APPROVAL,
            f"legal@{self.approver_domain}",
            "legal",
            "legal_token",
            "await_legal_approval",
            "structuredData",
            "clauseValidation",
            "risks",
        )

    def _partial_result(self, ctx: StageContext, **fields: Any) -> dict[str, Any]:
        return {
            "contractId": self._contract_id(ctx),
            "draft": ctx.state["draft"]["contractText"],
            "structuredData": ctx.state.get("structuredData"),
            "clauseValidation": ctx.state.get("clauseValidation"),
            "risks": ctx.state.get("risks"),
            **fields,
        }

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    @stage
    def begin(self, ctx: StageContext) -> Command:
        return Call(
            self.open_contract,
            {"requesterId": ctx.input["requesterId"]},
            save_as="contract",
            then="check_policy",
        )

    @stage
    def check_policy(self, ctx: StageContext) -> Command:
        logger.info(
            f"[{ctx.run_id}] Contract {self._contract_id(ctx)} requested by "
            f"{ctx.input['requesterId']} ({ctx.input['requesterRole']})"
        )
        return Call(
            self.check_policy_compliance,
            {"persona": ctx.input["requesterRole"], "action": "draft"},
            save_as="policy",
            then="draft",
        )

    @stage
    def draft(self, ctx: StageContext) -> Command:
        policy = ctx.state["policy"]
        if not policy["allowed"]:
            role = ctx.input["requesterRole"]
            logger.warning(f"[{ctx.run_id}] Policy violation: {role} cannot draft contracts")
            return Complete(
                {
                    "contractId": self._contract_id(ctx),
                    "error": "Policy violation",
                    "policyCheck": policy,
                }
            )
        return Call(
            self.draft_contract,
            {
                "contractType": ctx.input["contractType"],
                "jurisdiction": ctx.input["jurisdiction"],
                "product": ctx.input.get("product"),
                "parties": ctx.input.get("parties", {}),
                "keyTerms": ctx.input.get("keyTerms", {}),
            },
            save_as="draft",
            then="extract",
        )

    @stage
    def extract(self, ctx: StageContext) -> Command:
        return Call(
            self.extract_structured_data,
            {"contractText": ctx.state["draft"]["contractText"]},
            save_as="structuredData",
            then="validate_clauses",
        )

    @stage
    def validate_clauses(self, ctx: StageContext) -> Command:
        return Call(
            self.validate_contract_clauses,
            {
                "contractText": ctx.state["draft"]["contractText"],
                "contractType": ctx.input["contractType"],
                "jurisdiction": ctx.input["jurisdiction"],
            },
            save_as="clauseValidation",
            then="clause_gate",
        )

    @stage
    def clause_gate(self, ctx: StageContext) -> Command:
        if not ctx.state["clauseValidation"].get("needsApproval"):
            return self._detect_risks(ctx)
        return self._gate(
            ctx,
            CLAUSE_VALIDATION,
            f"legal@{self.approver_domain}",
            "clause-validation",
            "clause_token",
            "await_clause_approval",
            "clauseValidation",
        )

    @stage
    def await_clause_approval(self, ctx: StageContext) -> Command:
        return AwaitHook(
            token=ctx.state["clause_token"],
            on_timeout={"approved": False, "comment": "Clause validation approval timeout"},
            save_as="clauseApproval",
            then="after_clause_approval",
        )

    @stage
    def after_clause_approval(self, ctx: StageContext) -> Command:
        decision = ctx.state["clauseApproval"]
        if not decision.get("approved"):
            return Fail(
                f"Clause validation not approved for contractId: {self._contract_id(ctx)}. "
                f"Comment: {decision.get('comment') or 'Approval denied'}"
            )
        return self._detect_risks(ctx)

    @stage
    def manager_gate(self, ctx: StageContext) -> Command:
        if ctx.input["requesterRole"] != "requester":
            return self._legal_gate(ctx)
        return self._gate(
            ctx,
            MANAGER_REVIEW,
            f"contract-manager@{self.approver_domain}",
            "contract_manager",
            "manager_token",
            "await_manager_review",
            "structuredData",
            "clauseValidation",
            "risks",
        )

    @stage
    def await_manager_review(self, ctx: StageContext) -> Command:
        return AwaitHook(
            token=ctx.state["manager_token"],
            on_timeout={"approved": False, "comment": "Manager review timeout"},
            save_as="managerReview",
            then="after_manager_review",
        )

    @stage
    def after_manager_review(self, ctx: StageContext) -> Command:
        decision = ctx.state["managerReview"]
        if decision.get("approved"):
            return self._legal_gate(ctx)

        edits = decision.get("edits") or []
        if edits:
            text = ctx.state["draft"]["contractText"]
            return Call(
                self.generate_redline,
                {
                    "originalText": text,
                    "revisedText": text,
                    "reasonCodes": [e["reason"] for e in edits],
                },
                save_as="redline",
                then="manager_rejected",
            )
        return Complete(
            self._partial_result(
                ctx, managerReview=decision, error="Manager review not approved"
            )
        )

    @stage
    def manager_rejected(self, ctx: StageContext) -> Command:
        return Complete(
            self._partial_result(
                ctx,
                managerReview=ctx.state["managerReview"],
                redline=ctx.state["redline"],
                error="Manager review not approved",
            )
        )

    @stage
    def await_legal_approval(self, ctx: StageContext) -> Command:
        return AwaitHook(
            token=ctx.state["legal_token"],
            on_timeout={"approved": False, "comment": "Legal approval timeout"},
            save_as="legalApproval",
            then="send_to_counterparty",
        )

    @stage
    def send_to_counterparty(self, ctx: StageContext) -> Command:
        decision = ctx.state["legalApproval"]
        if not decision.get("approved"):
            return Complete(
                self._partial_result(
                    ctx, legalApproval=decision, error="Legal approval denied or timeout"
                )
            )
        return Call(
            self.send_approval_request,
            {
                "token": f"{self._contract_id(ctx)}:counterparty",
                "to": _counterparty_email(ctx.input.get("parties", {})),
                "role": "counterparty",
                "details": self._details(
                    ctx, "structuredData", "clauseValidation", "risks", "legalApproval"
                ),
            },
            save_as="counterparty",
            then="archive",
        )

    @stage
    def archive(self, ctx: StageContext) -> Command:
        return Call(
            self.archive_contract,
            {
                "contractId": self._contract_id(ctx),
                "finalVersion": ctx.state["draft"]["contractText"],
                "metadata": {
                    "contractType": ctx.input["contractType"],
                    "jurisdiction": ctx.input["jurisdiction"],
                    "product": ctx.input.get("product"),
                    "structuredData": ctx.state["structuredData"],
                    "clauseValidation": ctx.state["clauseValidation"],
                    "risks": ctx.state["risks"],
                    "approvals": {
                        "legal": ctx.state["legalApproval"],
                        "counterpartySent": True,
                    },
                },
            },
            save_as="archive",
            then="finish",
        )

    @stage
    def finish(self, ctx: StageContext) -> Command:
        contract_id = self._contract_id(ctx)
        return Complete(
            {
                "contractId": contract_id,
                "draft": ctx.state["draft"]["contractText"],
                "structuredData": ctx.state["structuredData"],
                "clauseCoverage": ctx.state["clauseValidation"],
                "risks": ctx.state["risks"],
                "policyViolations": [],
                "approval": ctx.state["legalApproval"],
                "archive": ctx.state["archive"],
                "contractUrl": f"{self.base_url.rstrip('/')}/contracts/{contract_id}",
            }
        )
