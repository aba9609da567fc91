from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from school_library.errors import ValidationError
from school_library.repositories.reservation_repo import ReservationRepo
from school_library.services.circulation_service import CirculationService
from school_library.utils.auth import current_member
from school_library.utils.decorators import staff_required

reservation_bp = Blueprint("reservations", __name__)


def _iso(value):
    return value.isoformat() if value else None


def _reservation_json(r):
    return {
        "id": r.id,
        "book_id": r.book_id,
        "book_title": r.book.title if r.book else None,
        "user_id": r.user_id,
        "queue_position": r.queue_position,
        "status": r.status,
        "reserved_at": _iso(r.reserved_at),
        "notified_at": _iso(r.notified_at),
        "expires_at": _iso(r.expires_at),
        "fulfilled_at": _iso(r.fulfilled_at),
        "copy_id": r.copy_id,
    }


@reservation_bp.post("/")
@jwt_required()
def place():
    data = request.get_json(silent=True) or {}
    me = current_member()
    try:
        book_id = int(data["bookId"])
        # staff may place a hold on behalf of a member
        member_id = int(data["userId"]) if me.is_library_staff and data.get("userId") else me.id
    except KeyError:
        raise ValidationError("Book ID is required")
    except (TypeError, ValueError):
        raise ValidationError("bookId and userId must be integers")

    r = CirculationService.place_reservation(book_id, member_id)
    return jsonify({
        "success": True,
        "reservationId": r.id,
        "queuePosition": r.queue_position,
        "message": f"Hold placed successfully. You are #{r.queue_position} in the queue.",
    }), 201


@reservation_bp.delete("/<int:reservation_id>")
@jwt_required()
def cancel(reservation_id: int):
    me = current_member()
    CirculationService.cancel_reservation(reservation_id, me.id)
    return jsonify({"success": True, "message": "Reservation cancelled successfully"})


@reservation_bp.get("/my")
@jwt_required()
def my_reservations():
    me = current_member()
    return jsonify({"success": True, "data": [_reservation_json(r) for r in ReservationRepo.list_by_user(me.id)]})


@reservation_bp.get("/book/<int:book_id>")
@jwt_required()
def book_queue(book_id: int):
    return jsonify({"success": True, "data": [_reservation_json(r) for r in ReservationRepo.queue_for_book(book_id)]})


@reservation_bp.get("/")
@jwt_required()
@staff_required
def list_reservations():
    try:
        book_id = int(request.args["bookId"]) if request.args.get("bookId") else None
        user_id = int(request.args["userId"]) if request.args.get("userId") else None
    except ValueError:
        raise ValidationError("bookId and userId must be integers")
    rows = ReservationRepo.list_filtered(
        status=request.args.get("status") or None,
        book_id=book_id,
        user_id=user_id,
    )
    return jsonify({"success": True, "data": [_reservation_json(r) for r in rows]})
