from flask import Flask, jsonify
from sqlalchemy.exc import OperationalError

from school_library.config import Config
from school_library.errors import CirculationError
from school_library.extensions import db, migrate, jwt, mail


def register_error_handlers(app):
    @app.errorhandler(CirculationError)
    def _circulation_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(OperationalError)
    def _storage_unavailable(e):
        db.session.rollback()
        app.logger.error(f"[storage] {e}")
        return jsonify({"success": False, "message": "Storage temporarily unavailable, please retry"}), 503


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # models must be imported before create_all / migrations see the metadata
    from school_library.models import user, book, book_copy, loan, reservation, fine, notification, audit_log  # noqa: F401

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    register_error_handlers(app)

    from school_library.controllers.circulation_controller import circulation_bp
    from school_library.controllers.reservation_controller import reservation_bp
    from school_library.controllers.fine_controller import fine_bp
    from school_library.controllers.notification_controller import notif_bp
    from school_library.controllers.job_controller import job_bp
    app.register_blueprint(circulation_bp, url_prefix="/circulation")
    app.register_blueprint(reservation_bp, url_prefix="/reservations")
    app.register_blueprint(fine_bp, url_prefix="/fines")
    app.register_blueprint(notif_bp, url_prefix="/notifications")
    app.register_blueprint(job_bp, url_prefix="/jobs")

    @app.get("/health")
    def health():
        return jsonify({"ok": True})

    # Scheduler (daily jobs + background side effects)
    from school_library.tasks.scheduler import start_scheduler
    start_scheduler(app)

    return app
