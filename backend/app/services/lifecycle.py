"""Editability of a class draft derived from its (status, approval status) pair.

This module is shared by the API services and the client pipeline, so it only depends on
the enums and never touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import NotEditableError
from app.models.class_draft import ApprovalStatus, ClassStatus

PENDING_REVIEW_REASON = "Class is pending review and cannot be edited"
APPROVED_REASON = "Class is already approved and cannot be edited"
LOCKED_REASON = "Class can no longer be edited in its current status"


@dataclass(frozen=True)
class LifecycleDecision:
    editable: bool
    reason: str | None = None


def evaluate_lifecycle(status: ClassStatus | str, approval_status: ApprovalStatus | str | None) -> LifecycleDecision:
    status = ClassStatus(status)
    approval = ApprovalStatus(approval_status) if approval_status is not None else None

    if approval == ApprovalStatus.approved:
        return LifecycleDecision(False, APPROVED_REASON)
    if status == ClassStatus.draft:
        if approval is None or approval == ApprovalStatus.rejected:
            return LifecycleDecision(True)
        return LifecycleDecision(False, PENDING_REVIEW_REASON)
    if approval == ApprovalStatus.pending:
        return LifecycleDecision(False, PENDING_REVIEW_REASON)
    return LifecycleDecision(False, LOCKED_REASON)


def ensure_editable(draft) -> None:
    """Raise ``NotEditableError`` unless the draft can still be mutated."""
    decision = evaluate_lifecycle(draft.status, draft.approval_status)
    if not decision.editable:
        raise NotEditableError(
            decision.reason or LOCKED_REASON,
            details={
                "status": ClassStatus(draft.status).value,
                "approval_status": ApprovalStatus(draft.approval_status).value if draft.approval_status else None,
            },
        )
