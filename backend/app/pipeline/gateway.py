"""Access to the class creation operations exposed by the API.

Engines depend on the ``ClassCreationGateway`` protocol; ``HttpClassCreationGateway`` is the
production implementation on top of ``httpx.AsyncClient``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter

from app.core.config import get_settings
from app.models.weekday import Weekday
from app.pipeline.errors import ErrorKind, PipelineError
from app.schemas.class_creation import (
    AssignResourcesRequest,
    AssignResourcesResult,
    AssignSessionResourceRequest,
    AssignTeacherRequest,
    AssignTeacherResult,
    AssignTimeSlotsRequest,
    ClassBasicInfo,
    ClassDraftOut,
    ClassSessionsOverview,
    DraftCreated,
    PatternApplyResult,
    ReadinessReport,
    ResourceAssignment,
    ResourceOption,
    SessionResourceAssigned,
    SubmitResult,
    TeacherAvailability,
    TeacherAvailableByDay,
    TimeSlotAssignment,
    TimeSlotOption,
)

logger = logging.getLogger(__name__)

M = TypeVar("M")

NETWORK_MESSAGE = "Could not reach the scheduling service. Check your connection and retry."
UNKNOWN_MESSAGE = "Something went wrong. Please retry."


class ClassCreationGateway(Protocol):
    async def create_draft(self, info: ClassBasicInfo) -> DraftCreated: ...

    async def update_draft(self, class_id: str, info: ClassBasicInfo) -> ClassDraftOut: ...

    async def get_draft(self, class_id: str) -> ClassDraftOut: ...

    async def delete_draft(self, class_id: str) -> None: ...

    async def list_sessions(self, class_id: str) -> ClassSessionsOverview: ...

    async def list_time_slot_candidates(self, branch_id: str) -> list[TimeSlotOption]: ...

    async def apply_time_slot_pattern(self, class_id: str, pattern: Mapping[Weekday, str]) -> PatternApplyResult: ...

    async def list_resource_candidates(
        self, class_id: str, day_of_week: Weekday, time_slot_id: str | None
    ) -> list[ResourceOption]: ...

    async def apply_resource_pattern(
        self,
        class_id: str,
        pattern: Mapping[Weekday, str],
        *,
        force_override: bool = False,
        include_suggestions: bool = False,
    ) -> AssignResourcesResult: ...

    async def list_resource_suggestions(self, class_id: str, session_id: str) -> list[ResourceOption]: ...

    async def assign_session_resource(
        self, class_id: str, session_id: str, resource_id: str
    ) -> SessionResourceAssigned: ...

    async def list_teacher_candidates(
        self,
        class_id: str,
        *,
        include_conflict_detail: bool = False,
        include_day_breakdown: bool = False,
        teacher_id: str | None = None,
    ) -> list[TeacherAvailability]: ...

    async def teachers_available_by_day(self, class_id: str) -> list[TeacherAvailableByDay]: ...

    async def assign_teacher(
        self, class_id: str, teacher_id: str, session_ids: list[str] | None = None
    ) -> AssignTeacherResult: ...

    async def validate_readiness(self, class_id: str) -> ReadinessReport: ...

    async def submit_for_approval(self, class_id: str) -> SubmitResult: ...


def _kind_for(status_code: int, code: str | None) -> ErrorKind:
    if code:
        try:
            return ErrorKind(code)
        except ValueError:
            pass
    if status_code in (400, 422):
        return ErrorKind.validation
    if status_code == 409:
        return ErrorKind.conflict
    if status_code == 404:
        return ErrorKind.not_found
    if status_code in (401, 403):
        return ErrorKind.permission_denied
    return ErrorKind.unknown


def error_from_response(response: httpx.Response) -> PipelineError:
    try:
        body = response.json()
    except ValueError:
        body = None

    code = None
    message = None
    details: dict[str, Any] = {}
    if isinstance(body, dict):
        code = body.get("code")
        message = body.get("message")
        details = body.get("details") or {}
        detail = body.get("detail")
        if isinstance(detail, str):
            message = message or detail
        elif isinstance(detail, list):
            # Request-body validation errors raised by FastAPI
            message = message or "Some fields are invalid"
            details = {
                ".".join(str(part) for part in item.get("loc", [])[1:]) or "body": item.get("msg", "")
                for item in detail
                if isinstance(item, dict)
            }

    kind = _kind_for(response.status_code, code)
    if kind == ErrorKind.unknown:
        message = message or UNKNOWN_MESSAGE
    return PipelineError(kind, message or f"Request failed with status {response.status_code}", details)


def _dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class HttpClassCreationGateway:
    """Calls the class creation endpoints over HTTP and maps failures to ``PipelineError``."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        api_prefix: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._prefix = settings.api_prefix if api_prefix is None else api_prefix
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout if timeout is not None else settings.pipeline_http_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClassCreationGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, f"{self._prefix}{path}", **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise PipelineError(ErrorKind.network, NETWORK_MESSAGE, {"error": str(exc)}) from exc
        if response.is_error:
            error = error_from_response(response)
            logger.info("%s %s -> %d %s", method, path, response.status_code, error.kind.value)
            raise error
        return response

    async def _get(self, path: str, adapter: TypeAdapter[M], params: dict | None = None) -> M:
        response = await self._request("GET", path, params=params)
        return adapter.validate_python(response.json())

    async def _post(self, path: str, adapter: TypeAdapter[M], payload: Any = None) -> M:
        response = await self._request("POST", path, json=payload)
        return adapter.validate_python(response.json())

    async def create_draft(self, info: ClassBasicInfo) -> DraftCreated:
        return await self._post("/classes/", TypeAdapter(DraftCreated), _dump(info))

    async def update_draft(self, class_id: str, info: ClassBasicInfo) -> ClassDraftOut:
        response = await self._request("PUT", f"/classes/{class_id}", json=_dump(info))
        return ClassDraftOut.model_validate(response.json())

    async def get_draft(self, class_id: str) -> ClassDraftOut:
        return await self._get(f"/classes/{class_id}", TypeAdapter(ClassDraftOut))

    async def delete_draft(self, class_id: str) -> None:
        await self._request("DELETE", f"/classes/{class_id}")

    async def list_sessions(self, class_id: str) -> ClassSessionsOverview:
        return await self._get(f"/classes/{class_id}/sessions", TypeAdapter(ClassSessionsOverview))

    async def list_time_slot_candidates(self, branch_id: str) -> list[TimeSlotOption]:
        return await self._get(f"/branches/{branch_id}/time-slot-templates", TypeAdapter(list[TimeSlotOption]))

    async def apply_time_slot_pattern(self, class_id: str, pattern: Mapping[Weekday, str]) -> PatternApplyResult:
        request = AssignTimeSlotsRequest(
            assignments=[
                TimeSlotAssignment(day_of_week=day, time_slot_template_id=value) for day, value in pattern.items()
            ]
        )
        return await self._post(f"/classes/{class_id}/time-slots", TypeAdapter(PatternApplyResult), _dump(request))

    async def list_resource_candidates(
        self, class_id: str, day_of_week: Weekday, time_slot_id: str | None
    ) -> list[ResourceOption]:
        params = {"dayOfWeek": day_of_week.value}
        if time_slot_id:
            params["timeSlotId"] = time_slot_id
        return await self._get(f"/classes/{class_id}/resources", TypeAdapter(list[ResourceOption]), params)

    async def apply_resource_pattern(
        self,
        class_id: str,
        pattern: Mapping[Weekday, str],
        *,
        force_override: bool = False,
        include_suggestions: bool = False,
    ) -> AssignResourcesResult:
        request = AssignResourcesRequest(
            pattern=[ResourceAssignment(day_of_week=day, resource_id=value) for day, value in pattern.items()],
            force_override=force_override,
            include_suggestions=include_suggestions,
        )
        return await self._post(f"/classes/{class_id}/resources", TypeAdapter(AssignResourcesResult), _dump(request))

    async def list_resource_suggestions(self, class_id: str, session_id: str) -> list[ResourceOption]:
        return await self._get(
            f"/classes/{class_id}/sessions/{session_id}/resources",
            TypeAdapter(list[ResourceOption]),
        )

    async def assign_session_resource(self, class_id: str, session_id: str, resource_id: str) -> SessionResourceAssigned:
        return await self._post(
            f"/classes/{class_id}/sessions/{session_id}/resource",
            TypeAdapter(SessionResourceAssigned),
            _dump(AssignSessionResourceRequest(resource_id=resource_id)),
        )

    async def list_teacher_candidates(
        self,
        class_id: str,
        *,
        include_conflict_detail: bool = False,
        include_day_breakdown: bool = False,
        teacher_id: str | None = None,
    ) -> list[TeacherAvailability]:
        params = {
            "includeConflictDetail": str(include_conflict_detail).lower(),
            "includeDayBreakdown": str(include_day_breakdown).lower(),
        }
        if teacher_id:
            params["teacherId"] = teacher_id
        return await self._get(f"/classes/{class_id}/available-teachers", TypeAdapter(list[TeacherAvailability]), params)

    async def teachers_available_by_day(self, class_id: str) -> list[TeacherAvailableByDay]:
        return await self._get(
            f"/classes/{class_id}/teachers/available-by-day",
            TypeAdapter(list[TeacherAvailableByDay]),
        )

    async def assign_teacher(
        self, class_id: str, teacher_id: str, session_ids: list[str] | None = None
    ) -> AssignTeacherResult:
        request = AssignTeacherRequest(teacher_id=teacher_id, session_ids=session_ids)
        return await self._post(f"/classes/{class_id}/teachers", TypeAdapter(AssignTeacherResult), _dump(request))

    async def validate_readiness(self, class_id: str) -> ReadinessReport:
        return await self._post(f"/classes/{class_id}/validate", TypeAdapter(ReadinessReport))

    async def submit_for_approval(self, class_id: str) -> SubmitResult:
        return await self._post(f"/classes/{class_id}/submit", TypeAdapter(SubmitResult))
