"""
Organization validation workflow.

Validates an organization by domain with a fan-out pattern:

1. Three workers run concurrently, each against its own data source:
   Legal Scout (legal name, jurisdiction), Sector Analyst (sector,
   industry) and Trust Officer (confidence score, sources).
2. A consolidation step cross-checks the worker outputs. Agreement between
   the legal and sector sources raises confidence, disagreement lowers it.
3. The run completes with the consolidated result and the raw worker
   outputs.

A failed worker does not abort the run: it reaches consolidation as an
error payload and its fields read as "Unknown".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import xxhash
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pykairos.config import get_settings
from pykairos.core import Call, Command, Complete, FanOut, StageContext
from pykairos.decorators import stage, step, workflow
from pykairos.workflows.http import JsonClient

logger = logging.getLogger(__name__)


class OrgValidationInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    domain: str = Field(min_length=1)
    requester_id: str | None = None


# =============================================================================
# Data sources
# =============================================================================


class OrgDataSource(Protocol):
    async def legal(self, domain: str) -> dict[str, Any]: ...

    async def sector(self, domain: str) -> dict[str, Any]: ...

    async def trust(self, domain: str) -> dict[str, Any]: ...


_LEGAL = {
    "reebok.com": {
        "legalName": "Reebok International Limited",
        "jurisdiction": "United Kingdom",
        "registrationNumber": "UK-12345678",
        "status": "active",
    },
    "nike.com": {
        "legalName": "Nike, Inc.",
        "jurisdiction": "United States - Delaware",
        "registrationNumber": "DE-98765432",
        "status": "active",
    },
}

_SECTOR = {
    "reebok.com": {
        "sector": "Consumer Goods",
        "industry": "Athletic Footwear and Apparel",
        "organizationName": "Reebok International Limited",
        "naicsCode": "316210",
    },
    "nike.com": {
        "sector": "Consumer Goods",
        "industry": "Athletic Footwear and Apparel",
        "organizationName": "Nike, Inc.",
        "naicsCode": "316210",
    },
}

_TRUST = {
    "reebok.com": {
        "confidence": 0.92,
        "score": 0.92,
        "sources": ["WHOIS Database", "Business Registry", "Industry Reports"],
        "indicators": [
            "Long-established domain",
            "Verified business registration",
            "Active industry presence",
        ],
    },
    "nike.com": {
        "confidence": 0.95,
        "score": 0.95,
        "sources": ["WHOIS Database", "SEC Filings", "Business Registry"],
        "indicators": [
            "Publicly traded company",
            "Verified business registration",
            "Strong brand presence",
        ],
    },
}


def _company_name(domain: str) -> str:
    name = domain.split(".")[0]
    return f"{name[:1].upper()}{name[1:]} Corporation"


class MockOrgDataSource:
    """
    Fixture data for nike.com and reebok.com, a generic record otherwise.

    Args:
        latency: Seconds each lookup sleeps, to make the fan-out observable.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency

    async def _pause(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)

    async def legal(self, domain: str) -> dict[str, Any]:
        await self._pause()
        if domain in _LEGAL:
            return dict(_LEGAL[domain])
        digest = xxhash.xxh32(domain.encode("utf-8")).hexdigest().upper()
        return {
            "legalName": _company_name(domain),
            "jurisdiction": "United States - Delaware",
            "registrationNumber": f"US-{digest}",
            "status": "active",
        }

    async def sector(self, domain: str) -> dict[str, Any]:
        await self._pause()
        if domain in _SECTOR:
            return dict(_SECTOR[domain])
        return {
            "sector": "Technology",
            "industry": "Software and Services",
            "organizationName": _company_name(domain),
            "naicsCode": "541511",
        }

    async def trust(self, domain: str) -> dict[str, Any]:
        await self._pause()
        if domain in _TRUST:
            return dict(_TRUST[domain])
        return {
            "confidence": 0.75,
            "score": 0.75,
            "sources": ["WHOIS Database", "Business Registry"],
            "indicators": ["Domain registered", "Business entity found"],
        }


class HttpOrgDataSource:
    """Looks organizations up through three JSON endpoints (POST ``{"domain": ...}``)."""

    def __init__(
        self,
        legal_url: str | None = None,
        sector_url: str | None = None,
        trust_url: str | None = None,
        client: JsonClient | None = None,
    ):
        base = f"{get_settings().app_base_url.rstrip('/')}/api/mocks/org-validation"
        self.legal_url = legal_url or f"{base}/legal"
        self.sector_url = sector_url or f"{base}/sector"
        self.trust_url = trust_url or f"{base}/trust"
        self._client = client or JsonClient()

    async def legal(self, domain: str) -> dict[str, Any]:
        return await self._client.post(self.legal_url, {"domain": domain})

    async def sector(self, domain: str) -> dict[str, Any]:
        return await self._client.post(self.sector_url, {"domain": domain})

    async def trust(self, domain: str) -> dict[str, Any]:
        return await self._client.post(self.trust_url, {"domain": domain})


# =============================================================================
# Consolidation
# =============================================================================


def _consistency(confidence: float) -> str:
    if confidence > 0.7:
        return "High consistency across sources."
    if confidence > 0.4:
        return "Moderate consistency with some discrepancies."
    return "Low consistency - manual review recommended."


def consolidate_findings(
    legal: dict[str, Any] | None,
    sector: dict[str, Any] | None,
    trust: dict[str, Any] | None,
) -> dict[str, Any]:
    """
    Cross-check worker outputs and score the organization.

    The trust score is the base confidence. When the legal and sector
    sources both name the organization, agreement (equal names, or one
    containing the other, case-insensitively) adds 0.2 and disagreement
    subtracts 0.3, clamped to [0, 1]. The organization is validated when
    confidence exceeds 0.5.
    """
    legal = legal or {}
    sector = sector or {}
    trust = trust or {}

    legal_name = legal.get("legalName") or legal.get("name") or "Unknown"
    jurisdiction = legal.get("jurisdiction") or "Unknown"
    sector_name = sector.get("sector") or sector.get("industry") or "Unknown"
    trust_score = trust.get("confidence") or trust.get("score") or 0

    confidence = float(trust_score)
    if legal.get("legalName") and sector.get("sector"):
        a = legal_name.lower().strip()
        b = (sector.get("organizationName") or "").lower().strip()
        if a == b or b in a or a in b:
            confidence = min(1.0, confidence + 0.2)
        else:
            confidence = max(0.0, confidence - 0.3)
    confidence = round(confidence, 4)

    reasoning = (
        f'Legal Scout identified "{legal_name}" in {jurisdiction}. '
        f"Sector Analyst classified as {sector_name}. "
        f"Trust Officer assigned confidence {trust_score * 100:.0f}%. "
        f"{_consistency(confidence)}"
    )

    return {
        "validated": confidence > 0.5,
        "organization": {
            "legalName": legal_name,
            "jurisdiction": jurisdiction,
            "sector": sector_name,
        },
        "confidence": confidence,
        "sources": [
            {"type": "legal", "source": "Legal Registry", "data": legal or None},
            {"type": "sector", "source": "Industry Database", "data": sector or None},
            {"type": "trust", "source": "Trust Verification", "data": trust or None},
        ],
        "reasoning": reasoning,
    }


def _worker_payload(result: dict[str, Any]) -> dict[str, Any] | None:
    if result.get("error") is not None:
        return {"error": result["error"]}
    return result.get("output")


# =============================================================================
# Workflow
# =============================================================================


@workflow(name="org-validation")
class OrgValidation:
    """
    Example:
        ```python
        runtime.register(OrgValidation(MockOrgDataSource()))
        run_id = await runtime.start("org-validation", {"domain": "nike.com"})
        run = await runtime.wait(run_id)
        run.result["validated"]  # True
        ```
    """

    input_model = OrgValidationInput

    def __init__(self, source: OrgDataSource | None = None):
        self.source = source or MockOrgDataSource()

    @step(max_retries=3)
    async def legal_scout(self, input: dict) -> dict:
        return await self.source.legal(input["domain"])

    @step(max_retries=3)
    async def sector_analyst(self, input: dict) -> dict:
        return await self.source.sector(input["domain"])

    @step(max_retries=3)
    async def trust_officer(self, input: dict) -> dict:
        return await self.source.trust(input["domain"])

    @step(max_retries=2)
    async def consolidate_results(self, input: dict) -> dict:
        return consolidate_findings(input["legal"], input["sector"], input["trust"])

    @stage
    def fan_out_workers(self, ctx: StageContext) -> Command:
        domain = ctx.input["domain"]
        logger.info(f"[{ctx.run_id}] Fanning out to 3 workers for {domain}")
        return FanOut(
            [
                Call(self.legal_scout, {"domain": domain}, required=False),
                Call(self.sector_analyst, {"domain": domain}, required=False),
                Call(self.trust_officer, {"domain": domain}, required=False),
            ],
            save_as="workers",
            then="consolidate",
        )

    @stage
    def consolidate(self, ctx: StageContext) -> Command:
        legal, sector, trust = (_worker_payload(w) for w in ctx.state["workers"])
        return Call(
            self.consolidate_results,
            {"legal": legal, "sector": sector, "trust": trust},
            save_as="consolidated",
            then="finish",
        )

    @stage
    def finish(self, ctx: StageContext) -> Command:
        legal, sector, trust = (_worker_payload(w) for w in ctx.state["workers"])
        consolidated = ctx.state["consolidated"]
        return Complete(
            {
                "domain": ctx.input["domain"],
                **consolidated,
                "workerResults": {"legal": legal, "sector": sector, "trust": trust},
            }
        )
