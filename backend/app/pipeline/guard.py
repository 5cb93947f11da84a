from __future__ import annotations

from app.pipeline.errors import ErrorKind, PipelineError
from app.services.lifecycle import evaluate_lifecycle


def require_editable(draft) -> None:
    """Refuse locally before a mutation is sent for a draft the server would reject."""
    decision = evaluate_lifecycle(draft.status, draft.approval_status)
    if not decision.editable:
        raise PipelineError(ErrorKind.not_editable, decision.reason or "Class cannot be edited")
