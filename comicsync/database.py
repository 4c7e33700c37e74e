import logging
import time
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.attributes import set_committed_value

from .core.config import get_settings
from .core.errors import ConcurrencyConflictError, StaleWriteError

logger = logging.getLogger(__name__)

settings = get_settings()
DATABASE_URL = settings.database_url

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
	DATABASE_URL,
	echo=False,
	future=True,
	connect_args=_connect_args,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

T = TypeVar("T")


def get_db() -> Generator[Session, None, None]:
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


def claim_version(db: Session, row) -> None:
	"""Compare-and-set the row's version column.

	Flushes pending changes, then bumps ``version`` only if it still holds the value this
	session loaded. A concurrent writer that committed first makes the UPDATE match zero
	rows, which surfaces as StaleWriteError and rolls the whole operation back.
	"""
	model = type(row)
	db.flush()
	seen = row.version
	result = db.execute(
		update(model)
		.where(model.id == row.id, model.version == seen)
		.values(version=seen + 1)
		.execution_options(synchronize_session=False)
	)
	if result.rowcount != 1:
		raise StaleWriteError(model.__tablename__, row.id, seen)
	set_committed_value(row, "version", seen + 1)


_UNIQUE_MARKERS = ("UNIQUE constraint failed", "duplicate key value", "Duplicate entry")


def is_unique_violation(exc: IntegrityError) -> bool:
	"""True for a lost insert race; NOT NULL, FK and CHECK failures are bugs, not contention."""
	if getattr(exc.orig, "pgcode", None) == "23505":
		return True
	message = str(exc.orig)
	return any(marker in message for marker in _UNIQUE_MARKERS)


def run_with_retry(
	db: Session,
	operation: Callable[[], T],
	*,
	name: str = "write",
	attempts: Optional[int] = None,
	backoff_seconds: Optional[float] = None,
) -> T:
	"""Run one logical read-modify-write as a single transaction.

	The operation is re-run from scratch after a version conflict or a unique-key race;
	anything else rolls back and propagates. Nothing is committed unless the operation
	completes.
	"""
	settings = get_settings()
	max_attempts = attempts or settings.write_retry_attempts
	backoff = settings.write_retry_backoff_seconds if backoff_seconds is None else backoff_seconds

	for attempt in range(max_attempts):
		try:
			result = operation()
			db.commit()
			return result
		except (StaleWriteError, IntegrityError) as exc:
			db.rollback()
			if isinstance(exc, IntegrityError) and not is_unique_violation(exc):
				raise
			logger.warning(
				"write conflict during %s (attempt %d/%d): %s",
				name,
				attempt + 1,
				max_attempts,
				exc,
			)
			if attempt + 1 < max_attempts and backoff > 0:
				time.sleep(backoff * (2 ** attempt))
		except Exception:
			db.rollback()
			raise

	logger.error("giving up on %s after %d attempts", name, max_attempts)
	raise ConcurrencyConflictError(name, max_attempts)
