import threading

from fastapi import HTTPException
from sqlalchemy import func, select

from receipts.db import SessionLocal
from receipts.models.account import Account
from receipts.models.document import Completion, Document, DocumentVersion
from receipts.schemas.completion import CompletionSubmit
from receipts.services.completions import Completions
from receipts.services.documents import Documents, UploadedFile

ACK = CompletionSubmit(
    acknowledged=True,
    max_scroll_percent=100,
    time_on_page_seconds=30,
    active_seconds=20,
)


def _run_concurrently(count, work):
    """Run ``work(session)`` in ``count`` threads, each with its own session."""
    barrier = threading.Barrier(count)
    results = []
    errors = []
    lock = threading.Lock()

    def _worker():
        session = SessionLocal()
        try:
            barrier.wait()
            value = work(session)
            with lock:
                results.append(value)
        except HTTPException as exc:
            with lock:
                errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=_worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


class TestConcurrentVersions:
    def test_versions_are_contiguous_and_pointer_is_max(
        self, db_session, pro_account, document
    ):
        doc_id = str(document.id)
        actor_id = pro_account.id

        def _add(session):
            actor = session.get(Account, actor_id)
            upload = UploadedFile(
                data=b"%PDF-1.4 concurrent", file_name="v.pdf", mime_type="application/pdf"
            )
            return Documents.add_version(session, doc_id, actor, upload).version_number

        results, errors = _run_concurrently(4, _add)

        assert len(results) + len(errors) == 4
        assert all(exc.status_code == 409 for exc in errors)
        assert sorted(results) == list(range(2, 2 + len(results)))

        db_session.expire_all()
        numbers = db_session.scalars(
            select(DocumentVersion.version_number)
            .where(DocumentVersion.document_id == document.id)
            .order_by(DocumentVersion.version_number)
        ).all()
        assert numbers == list(range(1, 2 + len(results)))
        current = Documents.get_current_version(db_session, doc_id)
        assert current.version_number == max(numbers)
        assert db_session.get(Document, document.id).version_number == max(numbers)


class TestConcurrentAcknowledgements:
    def test_limit_never_exceeded(self, db_session, pro_account, make_document):
        doc = make_document(pro_account, max_acknowledgers=2)
        doc_id = str(doc.id)

        results, errors = _run_concurrently(
            6, lambda session: Completions.record(session, doc_id, ACK).id
        )

        assert len(results) == 2
        assert len(errors) == 4
        assert all(exc.status_code == 410 for exc in errors)

        db_session.expire_all()
        stored = db_session.scalar(
            select(func.count(Completion.id))
            .where(Completion.document_id == doc.id)
            .where(Completion.acknowledged.is_(True))
        )
        assert stored == 2
        refreshed = db_session.get(Document, doc.id)
        assert refreshed.acknowledgement_count == 2
        assert refreshed.closed_at is not None
