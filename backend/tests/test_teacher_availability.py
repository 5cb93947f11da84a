from datetime import timedelta


def assign_evening(client, class_id, catalog, headers, days=("MON", "WED")):
    response = client.post(
        f"/api/classes/{class_id}/time-slots",
        json={"assignments": [{"dayOfWeek": day, "timeSlotTemplateId": catalog.evening_id} for day in days]},
        headers=headers["academic"],
    )
    assert response.status_code == 200, response.text


def test_candidates_are_ranked_with_conflict_summary(client, create_class, catalog, headers):
    class_id = create_class()["classId"]
    assign_evening(client, class_id, catalog, headers)

    response = client.get(f"/api/classes/{class_id}/available-teachers", headers=headers["academic"])
    assert response.status_code == 200
    candidates = response.json()

    assert [item["fullName"] for item in candidates] == ["Alice Nguyen", "Dung Pham", "Binh Tran", "Chris Le"]
    alice, dung, binh, chris = candidates

    assert alice["availabilityRate"] == 100.0
    assert alice["isRecommended"] is True
    assert alice["availabilityStatus"] == "FULLY_AVAILABLE"

    assert dung["availableSessions"] == 9
    assert dung["conflicts"]["leaveConflict"] == 1

    assert binh["availabilityRate"] == 50.0
    assert binh["availabilityStatus"] == "PARTIALLY_AVAILABLE"
    assert binh["conflicts"]["noAvailability"] == 5

    assert chris["availabilityRate"] == 0.0
    assert chris["availabilityStatus"] == "UNAVAILABLE"
    assert chris["conflicts"]["skillMismatch"] == 10
    assert chris["conflicts"]["totalConflicts"] == 10

    assert alice["conflictDetails"] is None
    assert alice["availabilityByDay"] is None


def test_conflict_detail_and_day_breakdown_for_one_teacher(client, create_class, catalog, headers):
    class_id = create_class()["classId"]
    assign_evening(client, class_id, catalog, headers)

    response = client.get(
        f"/api/classes/{class_id}/available-teachers",
        params={"teacherId": catalog.dung_id, "includeConflictDetail": "true", "includeDayBreakdown": "true"},
        headers=headers["academic"],
    )
    assert response.status_code == 200
    [dung] = response.json()

    assert dung["availabilityByDay"]["MON"] == {"available": 4, "total": 5, "rate": 80.0}
    assert dung["availabilityByDay"]["WED"] == {"available": 5, "total": 5, "rate": 100.0}
    [detail] = dung["conflictDetails"]
    assert detail["kind"] == "LEAVE_CONFLICT"
    assert detail["sessionDate"] == catalog.start_date.isoformat()
    assert detail["timeSlotStart"] == "18:00"

    unknown = client.get(
        f"/api/classes/{class_id}/available-teachers",
        params={"teacherId": "missing"},
        headers=headers["academic"],
    )
    assert unknown.status_code == 404


def test_sessions_without_time_slots_have_no_availability(client, create_class, catalog, headers):
    class_id = create_class()["classId"]

    response = client.get(f"/api/classes/{class_id}/available-teachers", headers=headers["academic"])

    alice = next(item for item in response.json() if item["teacherId"] == catalog.alice_id)
    assert alice["availableSessions"] == 0
    assert alice["conflicts"]["noAvailability"] == 10


def test_teaching_in_another_class_is_a_conflict(client, create_class, catalog, headers):
    other = create_class(name="IELTS Sprint", courseId=catalog.short_course_id, scheduleDays=["WED"])
    assign_evening(client, other["classId"], catalog, headers, days=("WED",))
    assigned = client.post(
        f"/api/classes/{other['classId']}/teachers",
        json={"teacherId": catalog.alice_id},
        headers=headers["academic"],
    )
    assert assigned.json()["assignedCount"] == 2

    class_id = create_class()["classId"]
    assign_evening(client, class_id, catalog, headers)
    response = client.get(
        f"/api/classes/{class_id}/available-teachers",
        params={"teacherId": catalog.alice_id, "includeConflictDetail": "true"},
        headers=headers["academic"],
    )

    [alice] = response.json()
    assert alice["availableSessions"] == 8
    assert alice["conflicts"]["teachingConflict"] == 2
    assert {item["conflictingClass"]["name"] for item in alice["conflictDetails"]} == {"IELTS Sprint"}


def test_teachers_available_by_day(client, create_class, catalog, headers):
    class_id = create_class()["classId"]
    assign_evening(client, class_id, catalog, headers)

    response = client.get(f"/api/classes/{class_id}/teachers/available-by-day", headers=headers["academic"])
    assert response.status_code == 200
    by_teacher = {item["fullName"]: item for item in response.json()}

    # no matching skill, so never available
    assert "Chris Le" not in by_teacher
    binh_days = by_teacher["Binh Tran"]["availableDays"]
    assert [day["dayOfWeek"] for day in binh_days] == ["WED"]
    assert binh_days[0]["isFullyAvailable"] is True
    assert binh_days[0]["firstDate"] == (catalog.start_date + timedelta(days=2)).isoformat()

    dung_monday = by_teacher["Dung Pham"]["availableDays"][0]
    assert dung_monday["dayOfWeek"] == "MON"
    assert dung_monday["availableSessions"] == 4
    assert dung_monday["isFullyAvailable"] is False
    assert dung_monday["firstDate"] == (catalog.start_date + timedelta(days=7)).isoformat()


def test_partial_assignment_needs_substitute(client, create_class, catalog, headers):
    class_id = create_class()["classId"]
    assign_evening(client, class_id, catalog, headers)

    first = client.post(
        f"/api/classes/{class_id}/teachers",
        json={"teacherId": catalog.binh_id},
        headers=headers["academic"],
    )
    assert first.json() == {"assignedCount": 5, "needsSubstitute": True, "remainingSessions": 5}

    sessions = client.get(f"/api/classes/{class_id}/sessions", headers=headers["academic"]).json()["sessions"]
    uncovered = [item["sessionId"] for item in sessions if item["teacherId"] is None]
    assert {item["dayOfWeek"] for item in sessions if item["teacherId"] is None} == {"MON"}

    second = client.post(
        f"/api/classes/{class_id}/teachers",
        json={"teacherId": catalog.alice_id, "sessionIds": uncovered},
        headers=headers["academic"],
    )
    assert second.json() == {"assignedCount": 5, "needsSubstitute": False, "remainingSessions": 0}

    sessions = client.get(f"/api/classes/{class_id}/sessions", headers=headers["academic"]).json()["sessions"]
    assert {item["teacherName"] for item in sessions if item["dayOfWeek"] == "WED"} == {"Binh Tran"}
    assert {item["teacherName"] for item in sessions if item["dayOfWeek"] == "MON"} == {"Alice Nguyen"}

    report = client.post(f"/api/classes/{class_id}/validate", headers=headers["academic"]).json()
    assert report["checks"]["hasMultipleTeachers"] is True
    assert report["warnings"]


def test_assignment_rejects_foreign_sessions(client, create_class, catalog, headers):
    class_id = create_class()["classId"]

    response = client.post(
        f"/api/classes/{class_id}/teachers",
        json={"teacherId": catalog.alice_id, "sessionIds": ["not-a-session"]},
        headers=headers["academic"],
    )

    assert response.status_code == 400
    assert response.json()["details"] == {"session_ids": ["not-a-session"]}


def test_whole_class_reassignment_replaces_previous_teacher(client, create_class, catalog, headers):
    class_id = create_class()["classId"]
    assign_evening(client, class_id, catalog, headers)
    url = f"/api/classes/{class_id}/teachers"

    first = client.post(url, json={"teacherId": catalog.alice_id}, headers=headers["academic"])
    assert first.json() == {"assignedCount": 10, "needsSubstitute": False, "remainingSessions": 0}

    second = client.post(url, json={"teacherId": catalog.binh_id}, headers=headers["academic"])
    assert second.json() == {"assignedCount": 5, "needsSubstitute": True, "remainingSessions": 5}

    sessions = client.get(f"/api/classes/{class_id}/sessions", headers=headers["academic"]).json()["sessions"]
    assert {item["teacherName"] for item in sessions} == {"Binh Tran", None}
    assert {item["dayOfWeek"] for item in sessions if item["teacherId"] is None} == {"MON"}

    report = client.post(f"/api/classes/{class_id}/validate", headers=headers["academic"]).json()
    assert report["canSubmit"] is False
    assert "5 session(s) have no teacher" in report["errors"]
