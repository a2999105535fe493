import json

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from tablekeeper.extensions import db
from tablekeeper.models import BlacklistEntry, CapacityConfig, OperationLog
from tablekeeper.services import reservations as reservation_service

from conftest import T0


def _unreachable(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("database is locked"))


def _logs(app, reservation_id):
    with app.app_context():
        rows = db.session.scalars(
            db.select(OperationLog).where(OperationLog.reservation_id == reservation_id).order_by(OperationLog.id)
        )
        return [(r.operation_type, r.operated_by, json.loads(r.details)) for r in rows]


def test_reservations_require_bearer_token_401(client):
    r = client.get("/api/reservations", query_string={"date": "2024-01-01"})
    assert r.status_code == 401
    assert r.get_json()["code"] == "UNAUTHORIZED"


def test_create_reservation_201_and_audit_log(app, make_reservation):
    r = make_reservation(remarks="window seat", tags="vip,birthday")
    assert r.status_code == 201
    body = r.get_json()
    assert body["status"] == "pending"
    assert body["guestPhone"] == "13800000000"
    assert body["tags"] == "vip,birthday"
    assert body["createdBy"] == 7

    [(operation, operator, details)] = _logs(app, body["id"])
    assert operation == "create"
    assert operator == 7
    assert details["guestName"] == "Li Wei"
    assert details["partySize"] == 4


def test_create_reservation_blacklisted_phone_403(app, make_reservation):
    with app.app_context():
        db.session.add(BlacklistEntry(guest_phone="13900000000", reason="no-show"))
        db.session.commit()

    r = make_reservation(guestPhone="13900000000")
    assert r.status_code == 403
    assert r.get_json()["code"] == "FORBIDDEN"


def test_create_duplicate_same_day_409(make_reservation):
    assert make_reservation().status_code == 201
    r = make_reservation(reservationTime="12:00", partySize=2)
    assert r.status_code == 409
    assert r.get_json()["code"] == "CONFLICT"


def test_duplicate_check_ignores_cancelled_and_other_days(client, auth_headers, make_reservation):
    first = make_reservation().get_json()
    assert make_reservation(reservationDate="2024-01-02").status_code == 201

    client.patch(f"/api/reservations/{first['id']}", json={"status": "cancelled"}, headers=auth_headers)
    assert make_reservation().status_code == 201


def test_blacklist_checked_before_duplicate(app, make_reservation):
    make_reservation()
    with app.app_context():
        db.session.add(BlacklistEntry(guest_phone="13800000000"))
        db.session.commit()
    assert make_reservation().status_code == 403


def test_create_reservation_validation(make_reservation):
    for overrides in (
        {"reservationDate": "2024-13-45"},
        {"reservationDate": "01/01/2024"},
        {"reservationTime": "25:00"},
        {"partySize": 0},
        {"guestName": ""},
        {"source": "fax"},
    ):
        r = make_reservation(**overrides)
        assert r.status_code == 422, overrides


def test_create_reservation_unknown_table_404(make_reservation):
    assert make_reservation(tableId=999).status_code == 404


def test_list_by_date_ordered_by_time(client, auth_headers, make_reservation):
    make_reservation(guestPhone="1", reservationTime="19:00")
    make_reservation(guestPhone="2", reservationTime="11:30")
    make_reservation(guestPhone="3", reservationDate="2024-01-02")

    body = client.get("/api/reservations", query_string={"date": "2024-01-01"}, headers=auth_headers).get_json()
    assert [r["reservationTime"] for r in body] == ["11:30", "19:00"]


def test_list_requires_date(client, auth_headers):
    r = client.get("/api/reservations", headers=auth_headers)
    assert r.status_code == 422


def test_list_by_date_range(client, auth_headers, make_reservation):
    make_reservation(guestPhone="1", reservationDate="2024-01-03")
    make_reservation(guestPhone="2", reservationDate="2024-01-01", reservationTime="20:00")
    make_reservation(guestPhone="3", reservationDate="2024-01-01", reservationTime="10:00")
    make_reservation(guestPhone="4", reservationDate="2024-02-01")

    body = client.get(
        "/api/reservations/range",
        query_string={"startDate": "2024-01-01", "endDate": "2024-01-31"},
        headers=auth_headers,
    ).get_json()
    assert [(r["reservationDate"], r["reservationTime"]) for r in body] == [
        ("2024-01-01", "10:00"),
        ("2024-01-01", "20:00"),
        ("2024-01-03", "18:30"),
    ]


def test_search_by_name_or_phone(client, auth_headers, make_reservation):
    make_reservation(guestName="Zhang San", guestPhone="13711112222")
    make_reservation(guestName="Wang Wu", guestPhone="13833334444", reservationDate="2024-01-05")

    by_name = client.get("/api/reservations/search", query_string={"q": "Zhang"}, headers=auth_headers).get_json()
    assert [r["guestName"] for r in by_name] == ["Zhang San"]

    by_phone = client.get("/api/reservations/search", query_string={"q": "3333"}, headers=auth_headers).get_json()
    assert [r["guestName"] for r in by_phone] == ["Wang Wu"]

    on_date = client.get(
        "/api/reservations/search", query_string={"q": "137", "date": "2024-01-05"}, headers=auth_headers
    ).get_json()
    assert on_date == []


def test_check_capacity_sums_live_reservations_in_range(client, auth_headers, make_reservation):
    make_reservation(guestPhone="1", reservationTime="17:30", partySize=4)
    make_reservation(guestPhone="2", reservationTime="19:00", partySize=6)
    make_reservation(guestPhone="3", reservationTime="22:00", partySize=10)
    cancelled = make_reservation(guestPhone="4", reservationTime="18:00", partySize=8).get_json()
    client.patch(f"/api/reservations/{cancelled['id']}", json={"status": "cancelled"}, headers=auth_headers)

    query = {"date": "2024-01-01", "startTime": "17:00", "endTime": "21:00", "maxCapacity": 12}
    body = client.get("/api/reservations/capacity", query_string=query, headers=auth_headers).get_json()
    assert body == {"currentCapacity": 10, "maxCapacity": 12, "isOverCapacity": False, "availableSeats": 2}

    query["maxCapacity"] = 10
    body = client.get("/api/reservations/capacity", query_string=query, headers=auth_headers).get_json()
    assert body["isOverCapacity"] is True
    assert body["availableSeats"] == 0


def test_capacity_is_advisory(client, auth_headers, make_reservation):
    make_reservation(guestPhone="1", partySize=50)
    assert make_reservation(guestPhone="2", partySize=50).status_code == 201


def test_capacity_config_ordered_by_start(app, client, auth_headers):
    with app.app_context():
        db.session.add(CapacityConfig(period_name="dinner", start_time="17:00", end_time="21:00", max_capacity=80))
        db.session.add(CapacityConfig(period_name="lunch", start_time="11:00", end_time="14:00", max_capacity=60))
        db.session.commit()

    body = client.get("/api/reservations/capacity-config", headers=auth_headers).get_json()
    assert [c["periodName"] for c in body] == ["lunch", "dinner"]
    assert body[0]["maxCapacity"] == 60


def test_day_stats(client, auth_headers, make_reservation):
    ids = [make_reservation(guestPhone=str(i), partySize=i).get_json()["id"] for i in range(1, 5)]
    client.patch(f"/api/reservations/{ids[0]}", json={"status": "arrived"}, headers=auth_headers)
    client.patch(f"/api/reservations/{ids[1]}", json={"status": "cancelled"}, headers=auth_headers)
    client.patch(f"/api/reservations/{ids[2]}", json={"status": "cancelled", "isHighRisk": 1}, headers=auth_headers)

    body = client.get("/api/reservations/stats", query_string={"date": "2024-01-01"}, headers=auth_headers).get_json()
    assert body == {
        "totalReservations": 4,
        "totalPeople": 10,
        "arrivedCount": 1,
        "pendingCount": 1,
        "cancelledCount": 2,
        "noShowCount": 1,
    }


def test_update_reservation_logs_changed_fields(app, client, auth_headers, make_reservation):
    reservation = make_reservation().get_json()
    r = client.patch(
        f"/api/reservations/{reservation['id']}",
        json={"partySize": 6, "status": "confirmed", "remarks": "high chair"},
        headers=auth_headers,
    )
    assert r.get_json() == {"success": True}

    logs = _logs(app, reservation["id"])
    assert logs[-1] == ("update", 7, {"partySize": 6, "status": "confirmed", "remarks": "high chair"})

    body = client.get("/api/reservations", query_string={"date": "2024-01-01"}, headers=auth_headers).get_json()
    assert body[0]["partySize"] == 6
    assert body[0]["status"] == "confirmed"
    assert body[0]["updatedBy"] == 7


def test_update_rejects_backward_status(client, auth_headers, make_reservation):
    reservation = make_reservation().get_json()
    url = f"/api/reservations/{reservation['id']}"
    assert client.patch(url, json={"status": "arrived"}, headers=auth_headers).status_code == 200
    assert client.patch(url, json={"status": "completed"}, headers=auth_headers).status_code == 200

    r = client.patch(url, json={"status": "pending"}, headers=auth_headers)
    assert r.status_code == 400
    assert r.get_json()["code"] == "INVALID_STATE"


def test_update_moving_onto_booked_day_409(client, auth_headers, make_reservation):
    make_reservation(reservationDate="2024-01-01")
    other = make_reservation(reservationDate="2024-01-02").get_json()

    r = client.patch(f"/api/reservations/{other['id']}", json={"reservationDate": "2024-01-01"}, headers=auth_headers)
    assert r.status_code == 409


def test_update_missing_reservation_404(client, auth_headers):
    assert client.patch("/api/reservations/9", json={"partySize": 2}, headers=auth_headers).status_code == 404


def test_delete_reservation_is_hard_delete_with_log(app, client, auth_headers, make_reservation):
    reservation = make_reservation().get_json()
    r = client.delete(f"/api/reservations/{reservation['id']}", headers=auth_headers)
    assert r.get_json() == {"success": True}

    assert client.get("/api/reservations", query_string={"date": "2024-01-01"}, headers=auth_headers).get_json() == []
    assert _logs(app, reservation["id"])[-1] == ("delete", 7, {"deletedReservationId": reservation["id"]})


def test_delete_missing_reservation_404(client, auth_headers):
    assert client.delete("/api/reservations/9", headers=auth_headers).status_code == 404


def test_seat_reservation_flow(client, auth_headers, make_table, make_reservation):
    table = make_table("A1", default_duration=90)
    reservation = make_reservation().get_json()
    base = f"/api/reservations/{reservation['id']}"

    r = client.post(f"{base}/start-dining", headers=auth_headers)
    assert r.status_code == 400  # no table yet

    assert client.post(f"{base}/table", json={"tableId": table["id"]}, headers=auth_headers).status_code == 200

    r = client.post(f"{base}/start-dining", headers=auth_headers)
    assert r.status_code == 201
    session_id = r.get_json()["diningSessionId"]

    info = client.get(f"{base}/table-info", headers=auth_headers).get_json()
    assert info["reservation"]["status"] == "arrived"
    assert info["reservation"]["diningSessionId"] == session_id
    assert info["table"]["status"] == "dining"
    assert info["diningSession"]["endTime"] == T0 + 5_400_000
    assert "Li Wei" in info["diningSession"]["remarks"]


def test_seat_reservation_on_busy_table_rejected(client, auth_headers, make_table, start_dining, make_reservation):
    table = make_table("A1")
    start_dining(table["id"])
    reservation = make_reservation(tableId=table["id"]).get_json()

    r = client.post(f"/api/reservations/{reservation['id']}/start-dining", headers=auth_headers)
    assert r.status_code == 400


def test_release_table_cancels_and_frees(client, auth_headers, make_table, make_reservation):
    table = make_table("A1")
    reservation = make_reservation(tableId=table["id"]).get_json()
    base = f"/api/reservations/{reservation['id']}"
    client.post(f"{base}/start-dining", headers=auth_headers)

    r = client.post(f"{base}/release", headers=auth_headers)
    assert r.status_code == 200

    info = client.get(f"{base}/table-info", headers=auth_headers).get_json()
    assert info["reservation"]["status"] == "cancelled"
    assert info["reservation"]["tableId"] is None
    assert info["table"] is None
    assert client.get(f"/api/tables/{table['id']}").get_json()["status"] == "idle"
    assert client.get("/api/dining/sessions").get_json() == []


def test_assign_unknown_table_404(client, auth_headers, make_reservation):
    reservation = make_reservation().get_json()
    r = client.post(f"/api/reservations/{reservation['id']}/table", json={"tableId": 77}, headers=auth_headers)
    assert r.status_code == 404


def test_table_info_without_table(client, auth_headers, make_reservation):
    reservation = make_reservation().get_json()
    info = client.get(f"/api/reservations/{reservation['id']}/table-info", headers=auth_headers).get_json()
    assert info["table"] is None
    assert info["diningSession"] is None


def test_create_reservation_fails_closed_when_blacklist_unreadable(client, auth_headers, make_reservation, monkeypatch):
    with monkeypatch.context() as m:
        m.setattr(Session, "scalar", _unreachable)
        r = make_reservation()
    assert r.status_code == 503
    assert r.get_json()["code"] == "UNAVAILABLE"

    assert client.get("/api/reservations", query_string={"date": "2024-01-01"}, headers=auth_headers).get_json() == []


def test_update_reservation_fails_closed_when_duplicate_check_unreadable(client, auth_headers, make_reservation, monkeypatch):
    reservation = make_reservation(reservationDate="2024-01-02").get_json()
    with monkeypatch.context() as m:
        m.setattr(Session, "scalar", _unreachable)
        r = client.patch(
            f"/api/reservations/{reservation['id']}", json={"reservationDate": "2024-01-01"}, headers=auth_headers
        )
    assert r.status_code == 503

    body = client.get("/api/reservations", query_string={"date": "2024-01-02"}, headers=auth_headers).get_json()
    assert [r["id"] for r in body] == [reservation["id"]]


def test_seating_is_all_or_nothing(client, auth_headers, make_table, make_reservation, monkeypatch):
    table = make_table("A1")
    reservation = make_reservation(tableId=table["id"]).get_json()
    base = f"/api/reservations/{reservation['id']}"

    with monkeypatch.context() as m:
        m.setattr(reservation_service, "_log", _unreachable)
        r = client.post(f"{base}/start-dining", headers=auth_headers)
    assert r.status_code == 503

    info = client.get(f"{base}/table-info", headers=auth_headers).get_json()
    assert info["reservation"]["status"] == "pending"
    assert info["reservation"]["diningSessionId"] is None
    assert info["table"]["status"] == "idle"
    assert client.get("/api/dining/sessions").get_json() == []

    assert client.post(f"{base}/start-dining", headers=auth_headers).status_code == 201


def test_release_is_all_or_nothing(client, auth_headers, make_table, make_reservation, monkeypatch):
    table = make_table("A1")
    reservation = make_reservation(tableId=table["id"]).get_json()
    base = f"/api/reservations/{reservation['id']}"
    session_id = client.post(f"{base}/start-dining", headers=auth_headers).get_json()["diningSessionId"]

    with monkeypatch.context() as m:
        m.setattr(reservation_service, "_log", _unreachable)
        r = client.post(f"{base}/release", headers=auth_headers)
    assert r.status_code == 503

    info = client.get(f"{base}/table-info", headers=auth_headers).get_json()
    assert info["reservation"]["status"] == "arrived"
    assert info["reservation"]["diningSessionId"] == session_id
    assert info["table"]["status"] == "dining"
    assert info["diningSession"]["isCompleted"] == 0
    assert info["diningSession"]["actualEndTime"] is None


def test_release_completed_session_still_frees_table(client, auth_headers, make_table, make_reservation):
    table = make_table("A1")
    reservation = make_reservation(tableId=table["id"]).get_json()
    base = f"/api/reservations/{reservation['id']}"
    session_id = client.post(f"{base}/start-dining", headers=auth_headers).get_json()["diningSessionId"]
    client.post(f"/api/dining/sessions/{session_id}/complete")

    assert client.post(f"{base}/release", headers=auth_headers).status_code == 200
    assert client.get(f"/api/tables/{table['id']}").get_json()["status"] == "idle"
