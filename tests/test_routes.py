from models import db
from models.audit_log import AuditLog
from models.reservation import Reservation
from tests.conftest import DAY, headers_for, make_reservation


def _request_body(studio, section_key="am", **extra):
    body = {
        "studio_id": studio.id,
        "room_id": studio.room_id,
        "date": DAY.isoformat(),
        "section_key": section_key,
        "section_label": section_key.upper(),
    }
    body.update(extra)
    return body


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_availability_is_public(client, studio):
    make_reservation(studio, "am", status="blocked")
    make_reservation(studio, "pm", status="requested")

    taken = client.get(f"/reservations/availability?studio_id={studio.id}&date={DAY}&section_key=am")
    free = client.get(f"/reservations/availability?studio_id={studio.id}&date={DAY}&section_key=pm")

    assert taken.get_json() == {"is_available": False}
    assert free.get_json() == {"is_available": True}


def test_free_sections(client, studio):
    make_reservation(studio, "am", status="confirmed", section_label="09:00-10:00")
    make_reservation(studio, "pm", status="requested", section_label="14:00-15:00")

    resp = client.get(f"/reservations/free-sections?studio_id={studio.id}&date={DAY}")

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["sections"] == ["pm"]
    assert body["time_slots"] == [{"section_key": "pm", "section_label": "14:00-15:00"}]
    assert body["has_history"] is True


def test_free_sections_bad_date(client, studio):
    resp = client.get(f"/reservations/free-sections?studio_id={studio.id}&date=June")

    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "ValidationError"


def test_requests_need_a_principal(client, studio):
    resp = client.post("/reservations", json=_request_body(studio))

    assert resp.status_code == 401


def test_teachers_cannot_submit_requests(client, studio, teacher):
    resp = client.post("/reservations", json=_request_body(studio), headers=headers_for(teacher))

    assert resp.status_code == 403


def test_role_aliases_are_accepted(client, studio, student):
    headers = {"X-Principal-Id": str(student.id), "X-Principal-Role": "requester"}

    resp = client.post("/reservations", json=_request_body(studio), headers=headers)

    assert resp.status_code == 201


def test_submit_and_cancel_over_http(client, studio, student):
    resp = client.post("/reservations", json=_request_body(studio), headers=headers_for(student))
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["status"] == "requested"
    assert created["created_at"].endswith("+08:00")

    resp = client.post(f"/reservations/{created['id']}/cancel", json={"cancel_reason": "holiday"},
                       headers=headers_for(student))
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "requestCanceled"

    mine = client.get("/reservations/mine", headers=headers_for(student)).get_json()
    assert [r["id"] for r in mine] == [created["id"]]


def test_students_do_not_see_each_others_rows(client, studio, student, other_student):
    row = make_reservation(studio, requester_id=student.id)

    resp = client.get(f"/reservations/{row.id}", headers=headers_for(other_student))

    assert resp.status_code == 404
    assert resp.get_json()["kind"] == "NotFoundError"


def test_booking_flow_over_http(client, studio, student, teacher, other_teacher):
    row = make_reservation(studio, requester_id=student.id)

    available = client.get("/teacher/reservations/available", headers=headers_for(teacher)).get_json()
    assert available["count"] == 1

    first = client.post(f"/teacher/reservations/{row.id}/claim", headers=headers_for(teacher))
    assert first.status_code == 201
    lesson_id = first.get_json()["lesson"]["id"]
    assert first.get_json()["reservation"]["status"] == "confirmed"

    second = client.post(f"/teacher/reservations/{row.id}/claim", headers=headers_for(other_teacher))
    assert second.status_code == 409
    assert second.get_json()["kind"] == "AlreadyClaimedError"

    cancel = client.post(f"/teacher/lessons/{lesson_id}/cancel", headers=headers_for(teacher))
    assert cancel.status_code == 200
    assert cancel.get_json()["status"] == "canceled"

    again = client.post(f"/teacher/reservations/{row.id}/claim", headers=headers_for(other_teacher))
    assert again.status_code == 201
    assert again.get_json()["reservation"]["teacher_id"] == other_teacher.id

    actions = [a.action for a in AuditLog.query.order_by(AuditLog.id).all()]
    assert actions == ["LESSON_CLAIM", "CLAIM_FAIL_ALREADY_CLAIMED", "LESSON_CANCEL", "LESSON_CLAIM"]


def test_lesson_comment_over_http(client, studio, student, teacher):
    row = make_reservation(studio, requester_id=student.id)
    lesson_id = client.post(f"/teacher/reservations/{row.id}/claim",
                            headers=headers_for(teacher)).get_json()["lesson"]["id"]

    bad = client.post(f"/teacher/lessons/{lesson_id}/comment", json={"type": "homework", "remark": "x"},
                      headers=headers_for(teacher))
    assert bad.status_code == 400
    assert bad.get_json()["kind"] == "ValidationError"

    ok = client.post(f"/teacher/lessons/{lesson_id}/comment",
                     json={"type": "lesson", "remark": "arpeggios", "options": ["technique"]},
                     headers=headers_for(teacher))
    assert ok.status_code == 200
    assert ok.get_json()["lesson_comment"] == "arpeggios"
    assert ok.get_json()["options"] == ["technique"]

    done = client.post(f"/teacher/lessons/{lesson_id}/complete", headers=headers_for(teacher))
    assert done.get_json()["status"] == "pendingForComment"
    closed = client.post(f"/teacher/lessons/{lesson_id}/close", headers=headers_for(teacher))
    assert closed.get_json()["status"] == "closed"


def test_batch_resubmission_over_http(client, studio, student):
    payload = {"updates": [
        _request_body(studio, "am", status="requested"),
        _request_body(studio, "pm", status="pending"),
    ]}

    first = client.post("/reservations/batch", json=payload, headers=headers_for(student))
    second = client.post("/reservations/batch", json=payload, headers=headers_for(student))

    assert first.status_code == 200
    assert first.get_json()["result"]["inserted"] == 2
    body = second.get_json()
    assert body["message"] == "Batch update completed successfully"
    assert body["result"]["skipped"] == {"exact": 2, "deleteNoop": 0}
    assert body["result"]["inserted"] == 0


def test_batch_without_updates(client, student):
    resp = client.post("/reservations/batch", json={}, headers=headers_for(student))

    assert resp.status_code == 400


def test_block_and_unblock_over_http(client, studio, admin, student):
    resp = client.post("/admin/block", json=_request_body(studio, reason="exam"), headers=headers_for(admin))
    assert resp.status_code == 201
    block_id = resp.get_json()["id"]

    clash = client.post("/admin/block", json=_request_body(studio), headers=headers_for(admin))
    assert clash.status_code == 409
    assert clash.get_json()["kind"] == "SlotUnavailableError"

    forbidden = client.delete(f"/admin/block/{block_id}", headers=headers_for(student))
    assert forbidden.status_code == 403

    resp = client.delete(f"/admin/block/{block_id}", headers=headers_for(admin))
    assert resp.status_code == 200
    db.session.expire_all()
    assert db.session.get(Reservation, block_id) is None


def test_refund_flow_over_http(client, studio, student, admin):
    row = make_reservation(studio, status="requestCanceled", requester_id=student.id, cancel_reason="moved")

    queue = client.get("/admin/cancel-requests", headers=headers_for(admin)).get_json()
    assert [r["id"] for r in queue["data"]] == [row.id]

    resp = client.post(f"/admin/reservations/{row.id}/approve-refund", headers=headers_for(admin))
    assert resp.status_code == 200
    refund = resp.get_json()["refund"]
    assert refund["source_reservation_id"] == row.id
    assert refund["cancel_reason"] == "moved"

    repeat = client.post(f"/admin/reservations/{row.id}/approve-refund", headers=headers_for(admin))
    assert repeat.status_code == 404

    remark = client.post(f"/admin/refunds/{refund['id']}/remark", json={"admin_remark": "cash"},
                         headers=headers_for(admin))
    assert remark.get_json()["admin_remark"] == "cash"

    refunds = client.get("/admin/refunds", headers=headers_for(admin)).get_json()
    assert [f["id"] for f in refunds] == [refund["id"]]


def test_admin_schedule_listings(client, studio, other_studio, admin, student):
    make_reservation(studio, "am", requester_id=student.id)
    make_reservation(other_studio, "am", status="blocked")

    by_studio = client.get(f"/admin/studios/{studio.id}/reservations", headers=headers_for(admin)).get_json()
    by_room = client.get(f"/admin/rooms/{studio.room_id}/reservations?status=blocked",
                         headers=headers_for(admin)).get_json()

    assert [r["studio_id"] for r in by_studio] == [studio.id]
    assert [r["studio_id"] for r in by_room] == [other_studio.id]


def test_audit_log_listing(client, studio, student, admin):
    client.post("/reservations", json=_request_body(studio), headers=headers_for(student))
    client.post("/admin/block", json=_request_body(studio, "pm"), headers=headers_for(admin))

    everything = client.get("/admin/audit-logs", headers=headers_for(admin)).get_json()
    blocks = client.get("/admin/audit-logs?action=SLOT_BLOCK", headers=headers_for(admin)).get_json()
    by_student = client.get(f"/admin/audit-logs?user_id={student.id}", headers=headers_for(admin)).get_json()

    assert sorted(e["action"] for e in everything) == ["RESERVATION_REQUEST", "SLOT_BLOCK"]
    assert [e["role"] for e in blocks] == ["ADMIN"]
    assert [e["action"] for e in by_student] == ["RESERVATION_REQUEST"]
    assert client.get("/admin/audit-logs", headers=headers_for(student)).status_code == 403
