"""
Business workflows built on the runtime.

- org_validation: fan-out to three workers, pure consolidation
- teacher_verification: registry lookup and a single MSR approval gate
- contract_review: three hook kinds in one run
- notify / http: notification and HTTP collaborators shared by the above
"""

from pykairos.core import HookCatalog
from pykairos.workflows.contract_review import (
    CLAUSE_VALIDATION,
    LEGAL_APPROVAL,
    MANAGER_REVIEW,
    ContractReview,
    MockContractServices,
)
from pykairos.workflows.notify import (
    HttpNotifier,
    Notification,
    Notifier,
    RecordingNotifier,
    approval_url,
)
from pykairos.workflows.org_validation import (
    HttpOrgDataSource,
    MockOrgDataSource,
    OrgValidation,
    consolidate_findings,
)
from pykairos.workflows.teacher_verification import (
    APPROVAL,
    HttpTeacherRegistry,
    MockTeacherRegistry,
    TeacherVerification,
)

STANDARD_HOOK_KINDS = (APPROVAL, CLAUSE_VALIDATION, MANAGER_REVIEW, LEGAL_APPROVAL)


def standard_catalog() -> HookCatalog:
    """Catalog with every hook kind the bundled workflows create."""
    return HookCatalog(list(STANDARD_HOOK_KINDS))


__all__ = [
    "APPROVAL",
    "CLAUSE_VALIDATION",
    "ContractReview",
    "HttpNotifier",
    "HttpOrgDataSource",
    "HttpTeacherRegistry",
    "LEGAL_APPROVAL",
    "MANAGER_REVIEW",
    "MockContractServices",
    "MockOrgDataSource",
    "MockTeacherRegistry",
    "Notification",
    "Notifier",
    "OrgValidation",
    "RecordingNotifier",
    "STANDARD_HOOK_KINDS",
    "TeacherVerification",
    "approval_url",
    "consolidate_findings",
    "standard_catalog",
]
