import os

# Must be set before the app (and its engine) is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")

import asyncio  # noqa: E402
from datetime import date, timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402,F401
from app.api.deps import get_db  # noqa: E402
from app.core.security import create_access_token, get_password_hash  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.branch import Branch  # noqa: E402
from app.models.class_draft import ApprovalStatus, ClassStatus  # noqa: E402
from app.models.course import Course  # noqa: E402
from app.models.resource import Resource, ResourceType  # noqa: E402
from app.models.teacher import Teacher  # noqa: E402
from app.models.time_slot import TimeSlotTemplate  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.models.weekday import Weekday  # noqa: E402
from app.pipeline.errors import ErrorKind, PipelineError  # noqa: E402
from app.pipeline.gateway import HttpClassCreationGateway  # noqa: E402
from app.schemas.class_creation import (  # noqa: E402
    AssignResourcesResult,
    AssignTeacherResult,
    ClassBasicInfo,
    ClassDraftOut,
    ClassSessionOut,
    ClassSessionsOverview,
    DateRange,
    DraftCreated,
    PatternApplyResult,
    ReadinessReport,
    ResourceOption,
    SessionResourceAssigned,
    SessionSummary,
    SubmitResult,
    TeacherAvailability,
    TimeSlotOption,
)
from app.services.rate_limit import clear_rate_limiter  # noqa: E402
from app.services.readiness import build_report  # noqa: E402
from app.services.session_generator import generate_sessions  # noqa: E402


def future_monday(weeks_ahead: int = 6) -> date:
    candidate = date.today() + timedelta(weeks=weeks_ahead)
    return candidate - timedelta(days=candidate.weekday())


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def engine():
    engine = create_engine(  # create isolated DB
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def override_db(session_factory):
    clear_rate_limiter()  # previous tests must not count against the limits of this one

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()
    clear_rate_limiter()


@pytest.fixture()
def client(override_db):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def start_date() -> date:
    return future_monday()


@pytest.fixture()
def catalog(session_factory, start_date):
    """One branch with rooms, evening slots and teachers; a second branch for access checks."""
    with session_factory() as session:
        branch = Branch(code="HN1", name="Hanoi Center")
        other_branch = Branch(code="HCM", name="Saigon Center")
        session.add_all([branch, other_branch])
        session.flush()

        course = Course(
            code="ENG",
            name="General English",
            total_sessions=10,
            hours_per_session=1.5,
            required_skill="ENGLISH",
        )
        short_course = Course(
            code="IELTS",
            name="IELTS Bootcamp",
            total_sessions=2,
            hours_per_session=1.5,
            required_skill="ENGLISH",
        )
        evening = TimeSlotTemplate(branch_id=branch.id, name="Evening", start_time="18:00", end_time="19:30")
        late = TimeSlotTemplate(branch_id=branch.id, name="Late evening", start_time="19:00", end_time="20:30")
        morning = TimeSlotTemplate(branch_id=branch.id, name="Morning", start_time="08:00", end_time="10:00")
        remote_slot = TimeSlotTemplate(branch_id=other_branch.id, name="Evening", start_time="18:00", end_time="19:30")
        session.add_all([course, short_course, evening, late, morning, remote_slot])
        session.flush()

        r1 = Resource(branch_id=branch.id, code="R1", name="Room 101", resource_type=ResourceType.room, capacity=30)
        r2 = Resource(branch_id=branch.id, code="R2", name="Room 102", resource_type=ResourceType.room, capacity=30)
        r3 = Resource(branch_id=branch.id, code="R3", name="Room 103", resource_type=ResourceType.room, capacity=40)
        small = Resource(branch_id=branch.id, code="S1", name="Study Room", resource_type=ResourceType.room, capacity=10)
        zoom = Resource(
            branch_id=branch.id,
            code="Z1",
            name="Zoom Account",
            resource_type=ResourceType.online_account,
            capacity=100,
        )
        remote_room = Resource(
            branch_id=other_branch.id,
            code="R1",
            name="Room 201",
            resource_type=ResourceType.room,
            capacity=30,
        )
        session.add_all([r1, r2, r3, small, zoom, remote_room])

        both_evenings = [
            {"day_of_week": "MON", "time_slot_template_id": evening.id},
            {"day_of_week": "WED", "time_slot_template_id": evening.id},
        ]
        alice = Teacher(
            branch_id=branch.id,
            full_name="Alice Nguyen",
            email="alice@example.com",
            skills=["ENGLISH"],
            availability=both_evenings,
            leave_dates=[],
        )
        binh = Teacher(
            branch_id=branch.id,
            full_name="Binh Tran",
            email="binh@example.com",
            skills=["ENGLISH", "IELTS"],
            availability=[{"day_of_week": "WED", "time_slot_template_id": evening.id}],
            leave_dates=[],
        )
        chris = Teacher(
            branch_id=branch.id,
            full_name="Chris Le",
            email="chris@example.com",
            skills=["MATH"],
            availability=both_evenings,
            leave_dates=[],
        )
        dung = Teacher(
            branch_id=branch.id,
            full_name="Dung Pham",
            email="dung@example.com",
            skills=["ENGLISH"],
            availability=both_evenings,
            leave_dates=[start_date.isoformat()],
        )
        session.add_all([alice, binh, chris, dung])

        password = get_password_hash("password123")
        admin = User(name="Admin", email="admin@example.com", hashed_password=password, role=UserRole.admin)
        academic = User(
            name="Academic Affairs",
            email="academic@example.com",
            hashed_password=password,
            role=UserRole.academic_affairs,
            branch_id=branch.id,
        )
        center_head = User(
            name="Center Head",
            email="head@example.com",
            hashed_password=password,
            role=UserRole.center_head,
            branch_id=branch.id,
        )
        outsider = User(
            name="Saigon Academic",
            email="outsider@example.com",
            hashed_password=password,
            role=UserRole.academic_affairs,
            branch_id=other_branch.id,
        )
        teacher_user = User(
            name="Alice Nguyen",
            email="alice.user@example.com",
            hashed_password=password,
            role=UserRole.teacher,
            branch_id=branch.id,
        )
        session.add_all([admin, academic, center_head, outsider, teacher_user])
        session.commit()

        return SimpleNamespace(
            branch_id=branch.id,
            other_branch_id=other_branch.id,
            course_id=course.id,
            short_course_id=short_course.id,
            evening_id=evening.id,
            late_id=late.id,
            morning_id=morning.id,
            remote_slot_id=remote_slot.id,
            r1_id=r1.id,
            r2_id=r2.id,
            r3_id=r3.id,
            small_id=small.id,
            zoom_id=zoom.id,
            remote_room_id=remote_room.id,
            alice_id=alice.id,
            binh_id=binh.id,
            chris_id=chris.id,
            dung_id=dung.id,
            tokens={
                "admin": create_access_token(admin.id, role=admin.role.value),
                "academic": create_access_token(academic.id, role=academic.role.value),
                "center_head": create_access_token(center_head.id, role=center_head.role.value),
                "outsider": create_access_token(outsider.id, role=outsider.role.value),
                "teacher": create_access_token(teacher_user.id, role=teacher_user.role.value),
            },
            start_date=start_date,
        )


@pytest.fixture()
def headers(catalog):
    return {role: {"Authorization": f"Bearer {token}"} for role, token in catalog.tokens.items()}


@pytest.fixture()
def class_payload(catalog):
    def _payload(**overrides) -> dict:
        payload = {
            "branchId": catalog.branch_id,
            "courseId": catalog.course_id,
            "name": "Evening English A",
            "modality": "OFFLINE",
            "startDate": catalog.start_date.isoformat(),
            "scheduleDays": ["MON", "WED"],
            "maxCapacity": 20,
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture()
def create_class(client, class_payload, headers):
    def _create(role: str = "academic", **overrides) -> dict:
        response = client.post("/api/classes/", json=class_payload(**overrides), headers=headers[role])
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture()
async def gateway(override_db, catalog):
    """HTTP gateway talking to the app in-process as the branch's academic affairs user."""
    transport = httpx.ASGITransport(app=app)
    async with HttpClassCreationGateway(
        "http://testserver",
        token=catalog.tokens["academic"],
        transport=transport,
    ) as gateway:
        yield gateway


class FakeGateway:
    """In-memory class creation API for pipeline tests.

    Sessions follow the real generator; resource and teacher behaviour is scripted per test
    through the public attributes.
    """

    def __init__(self, start_date: date, *, total_sessions: int = 10, hours_per_session: float = 1.5) -> None:
        self.start_date = start_date
        self.total_sessions = total_sessions
        self.hours_per_session = hours_per_session
        self.calls: list[tuple] = []
        self.draft: ClassDraftOut | None = None
        self.sessions: list[ClassSessionOut] = []
        self.time_slots: list[TimeSlotOption] = []
        self.resource_options: dict[Weekday, list[ResourceOption]] = {}
        self.resource_delays: dict[Weekday, float] = {}
        self.pattern_results: list[AssignResourcesResult] = []
        self.suggestions: dict[str, list[ResourceOption]] = {}
        self.session_failures: dict[str, PipelineError] = {}
        self.candidates: list[TeacherAvailability] = []
        self.candidate_details: dict[str, TeacherAvailability] = {}
        self.detail_delay = 0.0
        self.teacher_sessions: dict[str, set[str]] = {}

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def _require(self, class_id: str) -> ClassDraftOut:
        if self.draft is None or self.draft.id != class_id:
            raise PipelineError(ErrorKind.not_found, f"Class with id {class_id} not found")
        return self.draft

    async def create_draft(self, info: ClassBasicInfo) -> DraftCreated:
        self._record("create_draft", info.name)
        self.draft = ClassDraftOut(
            id="class-1",
            code="ENG-HN1-27-001",
            name=info.name,
            branch_id=info.branch_id,
            course_id=info.course_id,
            hours_per_session=self.hours_per_session,
            modality=info.modality,
            start_date=info.start_date,
            schedule_days=info.schedule_days,
            max_capacity=info.max_capacity,
            status=ClassStatus.draft,
            editable=True,
        )
        self.sessions = [
            ClassSessionOut(
                session_id=f"s{item.sequence_number}",
                sequence_number=item.sequence_number,
                date=item.session_date,
                day_of_week=item.day_of_week,
                week_number=item.week_number,
            )
            for item in generate_sessions(info.start_date, info.schedule_days, self.total_sessions)
        ]
        return DraftCreated(
            class_id=self.draft.id,
            code=self.draft.code,
            status=self.draft.status,
            session_summary=SessionSummary(total_sessions=len(self.sessions)),
        )

    async def update_draft(self, class_id: str, info: ClassBasicInfo) -> ClassDraftOut:
        self._record("update_draft", class_id)
        draft = self._require(class_id)
        self.draft = draft.model_copy(update={"name": info.name, "max_capacity": info.max_capacity})
        return self.draft

    async def get_draft(self, class_id: str) -> ClassDraftOut:
        self._record("get_draft", class_id)
        return self._require(class_id)

    async def delete_draft(self, class_id: str) -> None:
        self._record("delete_draft", class_id)
        self._require(class_id)
        self.draft = None
        self.sessions = []

    async def list_sessions(self, class_id: str) -> ClassSessionsOverview:
        self._record("list_sessions", class_id)
        draft = self._require(class_id)
        return ClassSessionsOverview(
            class_id=class_id,
            class_code=draft.code,
            total_sessions=len(self.sessions),
            date_range=DateRange(),
            sessions=[item.model_copy() for item in self.sessions],
            grouped_by_week=[],
        )

    async def list_time_slot_candidates(self, branch_id: str) -> list[TimeSlotOption]:
        self._record("list_time_slot_candidates", branch_id)
        return list(self.time_slots)

    async def apply_time_slot_pattern(self, class_id, pattern) -> PatternApplyResult:
        self._record("apply_time_slot_pattern", class_id, dict(pattern))
        updated = 0
        for item in self.sessions:
            if item.day_of_week in pattern:
                item.time_slot_template_id = pattern[item.day_of_week]
                updated += 1
        return PatternApplyResult(success_count=updated)

    async def list_resource_candidates(self, class_id, day_of_week, time_slot_id) -> list[ResourceOption]:
        self._record("list_resource_candidates", class_id, day_of_week, time_slot_id)
        delay = self.resource_delays.get(day_of_week)
        if delay:
            await asyncio.sleep(delay)
        return list(self.resource_options.get(day_of_week, []))

    async def apply_resource_pattern(
        self,
        class_id,
        pattern,
        *,
        force_override: bool = False,
        include_suggestions: bool = False,
    ) -> AssignResourcesResult:
        self._record("apply_resource_pattern", class_id, dict(pattern), force_override)
        self._require(class_id)
        if not self.draft.editable:
            raise PipelineError(ErrorKind.not_editable, "Class is pending review and cannot be edited")
        result = self.pattern_results.pop(0) if self.pattern_results else None
        conflicting = {item.session_id for item in result.conflicts} if result else set()
        success = 0
        skipped = 0
        for item in self.sessions:
            if item.day_of_week not in pattern:
                continue
            if force_override and item.resource_override:
                skipped += 1
                continue
            item.resource_override = False
            if item.session_id in conflicting:
                item.resource_id = None
            else:
                item.resource_id = pattern[item.day_of_week]
                success += 1
        if result is None:
            result = AssignResourcesResult(success_count=success, skipped_count=skipped, conflict_count=0, conflicts=[])
        return result

    async def list_resource_suggestions(self, class_id, session_id) -> list[ResourceOption]:
        self._record("list_resource_suggestions", class_id, session_id)
        return list(self.suggestions.get(session_id, []))

    async def assign_session_resource(self, class_id, session_id, resource_id) -> SessionResourceAssigned:
        self._record("assign_session_resource", class_id, session_id, resource_id)
        failure = self.session_failures.get(session_id)
        if failure is not None:
            raise failure
        item = next(item for item in self.sessions if item.session_id == session_id)
        item.resource_id = resource_id
        item.resource_override = True
        return SessionResourceAssigned(
            session_id=session_id,
            resource_id=resource_id,
            resource_name=resource_id,
            conflict_resolved=True,
        )

    async def list_teacher_candidates(
        self,
        class_id,
        *,
        include_conflict_detail: bool = False,
        include_day_breakdown: bool = False,
        teacher_id=None,
    ) -> list[TeacherAvailability]:
        self._record("list_teacher_candidates", class_id, include_conflict_detail, teacher_id)
        if teacher_id is not None:
            if self.detail_delay:
                await asyncio.sleep(self.detail_delay)
            detail = self.candidate_details.get(teacher_id)
            return [detail] if detail is not None else []
        if include_conflict_detail:
            return [self.candidate_details.get(item.teacher_id, item) for item in self.candidates]
        return list(self.candidates)

    async def teachers_available_by_day(self, class_id) -> list:
        self._record("teachers_available_by_day", class_id)
        return []

    async def assign_teacher(self, class_id, teacher_id, session_ids=None) -> AssignTeacherResult:
        self._record("assign_teacher", class_id, teacher_id, session_ids)
        allowed = self.teacher_sessions.get(teacher_id)
        targets = [
            item for item in self.sessions if session_ids is None or item.session_id in set(session_ids)
        ]
        assigned = 0
        for item in targets:
            if allowed is None or item.session_id in allowed:
                item.teacher_id = teacher_id
                assigned += 1
            else:
                item.teacher_id = None
        remaining = sum(1 for item in self.sessions if item.teacher_id is None)
        return AssignTeacherResult(
            assigned_count=assigned,
            needs_substitute=assigned < len(targets),
            remaining_sessions=remaining,
        )

    async def validate_readiness(self, class_id) -> ReadinessReport:
        self._record("validate_readiness", class_id)
        draft = self._require(class_id)
        return build_report(
            class_id,
            self.sessions,
            start_date=draft.start_date,
            status=draft.status,
            approval_status=draft.approval_status,
        )

    async def submit_for_approval(self, class_id) -> SubmitResult:
        self._record("submit_for_approval", class_id)
        draft = self._require(class_id)
        self.draft = draft.model_copy(
            update={
                "status": ClassStatus.scheduled,
                "approval_status": ApprovalStatus.pending,
                "editable": False,
            }
        )
        return SubmitResult(class_id=class_id, status=ClassStatus.scheduled, approval_status=ApprovalStatus.pending)


@pytest.fixture()
def fake_gateway(start_date):
    return FakeGateway(start_date)


@pytest.fixture()
def basic_info(start_date):
    return ClassBasicInfo(
        branch_id="branch-1",
        course_id="course-1",
        name="Evening English A",
        start_date=start_date,
        schedule_days=[Weekday.monday, Weekday.wednesday],
        max_capacity=20,
    )
