"""Human-readable document numbers (invoices, returns).

Numbers are random within a day prefix and guarded by a unique column.
A collision rolls back only the savepoint around the insert and the number
is drawn again.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftpos.app.core import errors
from shiftpos.app.core.config import settings
from shiftpos.app.core.database import Base

logger = logging.getLogger(__name__)


def generate_document_number(prefix: str, now: datetime) -> str:
    return f"{prefix}-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def insert_with_document_number(
    db: Session, row: Base, attr: str, prefix: str, now: datetime
) -> str:
    """Insert *row* with a fresh unique number in ``row.<attr>``."""
    for attempt in range(1, settings.DOCUMENT_NUMBER_ATTEMPTS + 1):
        number = generate_document_number(prefix, now)
        setattr(row, attr, number)
        try:
            with db.begin_nested():
                db.add(row)
                db.flush()
            return number
        except IntegrityError as exc:
            if attr not in str(exc.orig):
                raise
            logger.warning(
                "%s number collision on %s (attempt %d)", prefix, number, attempt
            )
    raise errors.internal(f"Could not allocate a unique {prefix} number")
