from decimal import Decimal

import pytest

from school_library.extensions import db
from school_library.models.book_copy import BookCopy
from school_library.models.fine import Fine
from school_library.models.loan import Loan
from school_library.repositories.book_repo import BookRepo
from school_library.services.circulation_service import CirculationService


@pytest.fixture
def admin(make_user):
    return make_user(role="admin")


def test_health(client):
    assert client.get("/health").get_json() == {"ok": True}


def test_token_required(client):
    assert client.post("/circulation/checkout", json={}).status_code == 401


def test_checkout_and_return(client, make_user, make_book, copies_of, librarian, auth_headers):
    member = make_user()
    copy = copies_of(make_book())[0]

    resp = client.post(
        "/circulation/checkout",
        json={"userId": member.id, "copyBarcode": copy.barcode},
        headers=auth_headers(librarian),
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["success"] is True
    assert body["dueDate"].endswith("23:59:59")
    assert db.session.get(Loan, body["loanId"]).checked_out_by == librarian.id

    resp = client.post("/circulation/return", json={"copyBarcode": copy.barcode}, headers=auth_headers(librarian))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["isOverdue"] is False
    assert body["fineAmount"] == 0
    assert body["fineId"] is None
    assert body["heldForReservation"] is None


def test_students_cannot_run_the_desk(client, make_user, make_book, copies_of, auth_headers):
    student = make_user()
    copy = copies_of(make_book())[0]

    resp = client.post(
        "/circulation/checkout",
        json={"userId": student.id, "copyBarcode": copy.barcode},
        headers=auth_headers(student),
    )

    assert resp.status_code == 403
    assert Loan.query.count() == 0


def test_conflict_reports_copy_status(client, make_user, make_book, copies_of, librarian, auth_headers):
    copy = copies_of(make_book())[0]
    CirculationService.checkout(make_user().id, copy_barcode=copy.barcode)

    resp = client.post(
        "/circulation/checkout",
        json={"userId": make_user().id, "copyBarcode": copy.barcode},
        headers=auth_headers(librarian),
    )

    assert resp.status_code == 409
    body = resp.get_json()
    assert body["success"] is False
    assert body["status"] == "checked_out"


def test_bad_input_is_a_400(client, librarian, auth_headers):
    resp = client.post("/circulation/checkout", json={"userId": "abc"}, headers=auth_headers(librarian))

    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


def test_numeric_barcode_is_accepted(client, make_user, make_book, librarian, auth_headers):
    book = make_book(copies=0)
    BookRepo.add_copy(BookCopy(book_id=book.id, barcode="12345"))

    resp = client.post(
        "/circulation/checkout",
        json={"userId": make_user().id, "copyBarcode": 12345},
        headers=auth_headers(librarian),
    )
    assert resp.status_code == 201

    resp = client.post("/circulation/return", json={"copyBarcode": 12345}, headers=auth_headers(librarian))
    assert resp.status_code == 200


def test_malformed_barcode_is_a_400(client, make_user, librarian, auth_headers):
    resp = client.post(
        "/circulation/checkout",
        json={"userId": make_user().id, "copyBarcode": ["C1-1"]},
        headers=auth_headers(librarian),
    )

    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


def test_member_renews_own_loan(client, make_user, make_book, copies_of, auth_headers):
    member = make_user()
    loan = CirculationService.checkout(member.id, copy_barcode=copies_of(make_book())[0].barcode)

    resp = client.post("/circulation/renew", json={"loanId": loan.id}, headers=auth_headers(member))

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["renewalCount"] == 1
    assert body["renewalsRemaining"] == 1


def test_loan_visibility(client, make_user, make_book, copies_of, librarian, auth_headers):
    member = make_user()
    loan = CirculationService.checkout(member.id, copy_barcode=copies_of(make_book())[0].barcode)

    assert client.get(f"/circulation/loans/{loan.id}", headers=auth_headers(member)).status_code == 200
    assert client.get(f"/circulation/loans/{loan.id}", headers=auth_headers(make_user())).status_code == 403
    assert client.get("/circulation/loans/999", headers=auth_headers(librarian)).status_code == 404

    mine = client.get("/circulation/loans/my", headers=auth_headers(member)).get_json()["data"]
    assert [x["id"] for x in mine] == [loan.id]
    everyone = client.get("/circulation/loans", headers=auth_headers(librarian)).get_json()["data"]
    assert len(everyone) == 1


def test_reservation_endpoints(client, make_user, make_book, copies_of, librarian, auth_headers):
    book = make_book()
    CirculationService.checkout(make_user().id, copy_barcode=copies_of(book)[0].barcode)
    member = make_user()

    resp = client.post("/reservations/", json={"bookId": book.id}, headers=auth_headers(member))
    assert resp.status_code == 201
    reservation_id = resp.get_json()["reservationId"]
    assert resp.get_json()["queuePosition"] == 1

    on_behalf = make_user()
    resp = client.post(
        "/reservations/",
        json={"bookId": book.id, "userId": on_behalf.id},
        headers=auth_headers(librarian),
    )
    assert resp.get_json()["queuePosition"] == 2

    queue = client.get(f"/reservations/book/{book.id}", headers=auth_headers(member)).get_json()["data"]
    assert [r["user_id"] for r in queue] == [member.id, on_behalf.id]

    resp = client.delete(f"/reservations/{reservation_id}", headers=auth_headers(member))
    assert resp.status_code == 200
    resp = client.delete(f"/reservations/{reservation_id}", headers=auth_headers(member))
    assert resp.status_code == 400


def test_hold_on_available_book_says_so(client, make_user, make_book, auth_headers):
    book = make_book()

    resp = client.post("/reservations/", json={"bookId": book.id}, headers=auth_headers(make_user()))

    assert resp.status_code == 409
    assert resp.get_json()["available"] is True


def test_fine_endpoints(client, make_user, librarian, auth_headers):
    member = make_user()

    resp = client.post(
        "/fines/issue",
        json={"userId": member.id, "fineType": "damaged", "amount": 4.5},
        headers=auth_headers(librarian),
    )
    assert resp.status_code == 201
    fine_id = resp.get_json()["id"]

    mine = client.get("/fines/my", headers=auth_headers(member)).get_json()["data"]
    assert mine[0]["amount"] == 4.5
    assert client.post(f"/fines/{fine_id}/pay", headers=auth_headers(member)).status_code == 403

    resp = client.post(f"/fines/{fine_id}/waive", json={"reason": "goodwill"}, headers=auth_headers(librarian))
    assert resp.status_code == 200
    assert db.session.get(Fine, fine_id).status == "waived"

    resp = client.post(f"/fines/{fine_id}/pay", headers=auth_headers(librarian))
    assert resp.status_code == 400

    db.session.add(Fine(user_id=member.id, fine_type="lost", amount=Decimal("2.00")))
    db.session.commit()
    resp = client.post(f"/fines/pay-all/{member.id}", headers=auth_headers(librarian))
    assert resp.get_json()["totalPaid"] == 2.0


def test_notifications_feed(client, make_user, make_book, copies_of, auth_headers):
    member = make_user()
    CirculationService.checkout(member.id, copy_barcode=copies_of(make_book())[0].barcode)

    feed = client.get("/notifications/my", headers=auth_headers(member)).get_json()["data"]

    assert [n["type"] for n in feed] == ["checkout_confirmation"]


def test_jobs_are_admin_only(client, admin, librarian, auth_headers):
    assert client.post("/jobs/run", headers=auth_headers(librarian)).status_code == 403

    resp = client.post("/jobs/run", headers=auth_headers(admin))

    assert resp.status_code == 200
    assert set(resp.get_json()["data"]) == {"dueReminders", "overdueUpdated", "holdsExpired"}


def test_deactivated_member_token_is_refused(client, make_user, auth_headers):
    member = make_user(active=False)

    resp = client.get("/circulation/loans/my", headers=auth_headers(member))

    assert resp.status_code == 403
