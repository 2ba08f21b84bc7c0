from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.models.idempotency import IdempotencyRecord, IdempotencyStatus
from storefront.utils.log import get_logger

log = get_logger("idempotency")


class IdempotencyRepository:
    def __init__(self, db: Session):
        # db is the caller's session; records commit together with the caller's work
        self.db = db

    def get(self, key: str) -> Optional[IdempotencyRecord]:
        return self.db.query(IdempotencyRecord).filter(IdempotencyRecord.key == key).first()

    def begin(self, key: str, operation: str) -> Tuple[IdempotencyRecord, bool]:
        """
        Ensure an idempotency row exists for `key`.
        Returns (record, created_flag)
          - created_flag == True  -> this call inserted the IN_PROGRESS row (owner)
          - created_flag == False -> row already existed (previous or concurrent request)

        The insert runs in a SAVEPOINT so a unique-key collision leaves the caller's
        transaction usable.
        """
        try:
            with self.db.begin_nested():
                rec = IdempotencyRecord(
                    key=key, operation=operation, status=IdempotencyStatus.IN_PROGRESS
                )
                self.db.add(rec)
                self.db.flush()
            log.debug("begin(): created key=%r", key)
            return rec, True
        except IntegrityError:
            log.debug("begin(): collision for key=%r", key)
            return self.get(key), False

    def restart(self, rec: IdempotencyRecord) -> IdempotencyRecord:
        """Take ownership of a FAILED record so the operation can be retried."""
        rec.status = IdempotencyStatus.IN_PROGRESS
        rec.last_error = None
        self.db.flush()
        return rec

    def mark_completed(self, key: str, response_body: dict) -> IdempotencyRecord:
        rec = self.get(key)
        if not rec:
            raise RuntimeError("Idempotency record missing for key: " + str(key))
        rec.status = IdempotencyStatus.COMPLETED
        rec.response_body = response_body
        self.db.flush()
        return rec

    def mark_failed(self, key: str, operation: str, error_message: str) -> IdempotencyRecord:
        rec = self.get(key)
        if not rec:
            rec = IdempotencyRecord(key=key, operation=operation)
            self.db.add(rec)
        rec.status = IdempotencyStatus.FAILED
        rec.last_error = error_message[:1024]
        self.db.flush()
        return rec
