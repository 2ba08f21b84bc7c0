from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session, SessionTransaction

from storefront.utils.log import get_logger

log = get_logger("db")


@contextmanager
def smart_transaction(session: Session) -> Iterator[SessionTransaction]:
    """
    Run the block as one unit of work on ``session``.

    A SAVEPOINT is opened when the session is already inside a transaction
    (checkout reads the cart before writing, so that is the common path);
    otherwise a plain transaction is started. An order insert, its coupon
    redemption and the cart clear either all land or none do.

        with smart_transaction(db):
            ... DB work ...
    """
    nested = session.in_transaction()
    tx = session.begin_nested() if nested else session.begin()
    try:
        with tx:
            yield tx
    except Exception:
        log.debug("%s rolled back", "savepoint" if nested else "transaction")
        raise
