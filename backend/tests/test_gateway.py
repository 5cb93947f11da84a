import json

import httpx
import pytest

from app.models.weekday import Weekday
from app.pipeline.errors import ErrorKind, PipelineError
from app.pipeline.gateway import HttpClassCreationGateway, error_from_response


def make_gateway(handler) -> HttpClassCreationGateway:
    return HttpClassCreationGateway("http://scheduler.test", token="secret", transport=httpx.MockTransport(handler))


def test_error_envelope_maps_to_kind():
    response = httpx.Response(
        409,
        json={"code": "NOT_EDITABLE", "message": "Class is pending review", "details": {"status": "SCHEDULED"}},
    )

    error = error_from_response(response)

    assert error.kind == ErrorKind.not_editable
    assert error.message == "Class is pending review"
    assert error.details == {"status": "SCHEDULED"}
    assert error.locks_draft


def test_request_validation_errors_become_field_details():
    response = httpx.Response(
        422,
        json={"detail": [{"loc": ["body", "maxCapacity"], "msg": "Input should be greater than 0", "type": "x"}]},
    )

    error = error_from_response(response)

    assert error.kind == ErrorKind.validation
    assert error.details == {"maxCapacity": "Input should be greater than 0"}


def test_plain_detail_and_unknown_status():
    forbidden = error_from_response(httpx.Response(403, json={"detail": "Insufficient permissions"}))
    assert forbidden.kind == ErrorKind.permission_denied
    assert forbidden.message == "Insufficient permissions"

    broken = error_from_response(httpx.Response(500, text="<html>oops</html>"))
    assert broken.kind == ErrorKind.unknown
    assert broken.message == "Something went wrong. Please retry."

    conflict = error_from_response(httpx.Response(409, json={"detail": "Name already used"}))
    assert conflict.kind == ErrorKind.conflict
    assert conflict.is_recoverable


@pytest.mark.anyio
async def test_request_shape():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"successCount": 8, "skippedCount": 0, "conflictCount": 0, "conflicts": []})

    async with make_gateway(handler) as gateway:
        result = await gateway.apply_resource_pattern(
            "class-1",
            {Weekday.monday: "room-1", Weekday.wednesday: "room-1"},
            include_suggestions=True,
        )

    assert result.success_count == 8
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/api/classes/class-1/resources"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {
        "pattern": [
            {"dayOfWeek": "MON", "resourceId": "room-1"},
            {"dayOfWeek": "WED", "resourceId": "room-1"},
        ],
        "forceOverride": False,
        "includeSuggestions": True,
    }


@pytest.mark.anyio
async def test_query_parameters():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    async with make_gateway(handler) as gateway:
        assert await gateway.list_resource_candidates("class-1", Weekday.friday, "slot-1") == []
        assert await gateway.list_teacher_candidates("class-1", include_conflict_detail=True, teacher_id="t-1") == []

    assert dict(seen[0].url.params) == {"dayOfWeek": "FRI", "timeSlotId": "slot-1"}
    assert dict(seen[1].url.params) == {
        "includeConflictDetail": "true",
        "includeDayBreakdown": "false",
        "teacherId": "t-1",
    }


@pytest.mark.anyio
async def test_error_responses_raise_pipeline_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"code": "NOT_FOUND", "message": "Class with id x not found", "details": {}})

    async with make_gateway(handler) as gateway:
        with pytest.raises(PipelineError) as exc_info:
            await gateway.get_draft("x")

    assert exc_info.value.kind == ErrorKind.not_found


@pytest.mark.anyio
async def test_transport_failure_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with make_gateway(handler) as gateway:
        with pytest.raises(PipelineError) as exc_info:
            await gateway.submit_for_approval("class-1")

    assert exc_info.value.kind == ErrorKind.network
    assert not exc_info.value.locks_draft


@pytest.mark.anyio
async def test_round_trip_against_app(gateway, catalog):
    templates = await gateway.list_time_slot_candidates(catalog.branch_id)

    assert catalog.evening_id in {item.id for item in templates}
    with pytest.raises(PipelineError) as exc_info:
        await gateway.get_draft("missing")
    assert exc_info.value.kind == ErrorKind.not_found
