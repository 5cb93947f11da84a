from __future__ import annotations

import logging

from app.pipeline.concurrency import DraftAccess
from app.pipeline.errors import ErrorKind, PipelineError
from app.pipeline.gateway import ClassCreationGateway
from app.pipeline.guard import require_editable
from app.schemas.class_creation import ClassDraftOut, ReadinessReport, SubmitResult

logger = logging.getLogger(__name__)


class ReadinessGate:
    def __init__(self, gateway: ClassCreationGateway, *, access: DraftAccess | None = None) -> None:
        self._gateway = gateway
        self._access = access or DraftAccess()
        self.last_report: ReadinessReport | None = None

    async def validate(self, class_id: str) -> ReadinessReport:
        async with self._access.read():
            report = await self._gateway.validate_readiness(class_id)
        self.last_report = report
        return report

    async def submit(self, draft: ClassDraftOut) -> SubmitResult:
        """Submit for approval only after a fresh readiness check allows it."""
        require_editable(draft)
        report = await self.validate(draft.id)
        if not report.can_submit:
            message = "; ".join(report.errors) or report.message
            raise PipelineError(ErrorKind.validation, message, {"errors": report.errors})
        async with self._access.mutate():
            result = await self._gateway.submit_for_approval(draft.id)
        logger.info("Class %s submitted for approval", draft.code)
        return result
