import threading
import time

from school_library.models.audit_log import AuditLog
from school_library.services.audit_service import AuditService
from school_library.tasks import dispatcher
from school_library.utils.locks import KeyedLock, book_key, member_key


def test_same_key_serializes():
    locks = KeyedLock()
    inside = []
    overlaps = []

    def worker():
        with locks.hold(book_key(1)):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []
    assert len(locks) == 0


def test_opposite_key_order_does_not_deadlock():
    locks = KeyedLock()
    done = []

    def worker(keys):
        for _ in range(50):
            with locks.hold(*keys):
                pass
        done.append(keys)

    a = threading.Thread(target=worker, args=((book_key(1), member_key(2)),))
    b = threading.Thread(target=worker, args=((member_key(2), book_key(1)),))
    a.start()
    b.start()
    a.join(timeout=5)
    b.join(timeout=5)

    assert len(done) == 2


def test_inline_dispatch_swallows_failures(app):
    def boom():
        raise RuntimeError("nope")

    dispatcher.dispatch(boom)
    dispatcher.dispatch(AuditService.record, None, "PING")

    assert AuditLog.query.filter_by(action="PING").count() == 1


class _FakeScheduler:
    running = True

    def __init__(self):
        self.jobs = []

    def add_job(self, func, args=(), **kwargs):
        self.jobs.append((func, args))


def test_async_dispatch_hands_off_to_scheduler(app):
    fake = _FakeScheduler()
    app.config["NOTIFY_ASYNC"] = True
    app.extensions["apscheduler"] = fake

    dispatcher.dispatch(AuditService.record, None, "QUEUED")

    assert AuditLog.query.filter_by(action="QUEUED").count() == 0
    func, args = fake.jobs[0]
    func(*args)
    assert AuditLog.query.filter_by(action="QUEUED").count() == 1
