"""
Operation boundary for lifecycle services.

``lifecycle_operation`` wraps a service coroutine so that it runs as exactly
one unit of work: the actor kind is checked once, the session is committed on
success and rolled back on any failure, queued notifications are dispatched
only after commit, and every outcome is reported as an ``OperationResult``.
"""
import functools
import logging
import time
import traceback
from typing import Any, Callable, Iterable, Optional, Tuple, Type

from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InvalidRequestError,
    OperationalError,
    PendingRollbackError,
    SQLAlchemyError,
    StatementError,
    TimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import DomainError, ErrorKind
from core.logging_config import LifecycleLogger
from core.outbox import NotificationOutbox
from db.enums import ActorKind
from schemas.actor import Actor
from schemas.operation_result import OperationResult

logger = logging.getLogger(__name__)
lifecycle_logger = LifecycleLogger("operations")


class DatabaseErrorHandler:
    """Centralized database error classification and logging."""

    DATABASE_EXCEPTIONS = (
        SQLAlchemyError,
        IntegrityError,
        OperationalError,
        DisconnectionError,
        TimeoutError,
        StatementError,
        InvalidRequestError,
        PendingRollbackError,
        ConnectionError,
    )

    @staticmethod
    def handle_database_error(
        exc: Exception,
        operation: str,
        context: Optional[dict] = None,
    ) -> Tuple[bool, str]:
        """
        Log a database error with its classification.

        Returns:
            Tuple of (is_recoverable, error_message)
        """
        context_str = f" | Context: {context}" if context else ""

        if isinstance(exc, IntegrityError):
            error_msg = f"Database integrity error during {operation}: {exc}{context_str}"
            logger.warning(error_msg)
            return False, error_msg

        if isinstance(exc, (ConnectionError, DisconnectionError)):
            error_msg = f"Database connection error during {operation}: {exc}{context_str}"
            logger.error(error_msg)
            return True, error_msg

        if isinstance(exc, TimeoutError):
            error_msg = f"Database timeout during {operation}: {exc}{context_str}"
            logger.warning(error_msg)
            return True, error_msg

        if isinstance(exc, OperationalError):
            # Serialization failures under SERIALIZABLE surface here
            error_msg = f"Database operational error during {operation}: {exc}{context_str}"
            logger.error(error_msg)
            return True, error_msg

        if isinstance(exc, StatementError):
            error_msg = f"Database statement error during {operation}: {exc}{context_str}"
            logger.warning(error_msg)
            return False, error_msg

        error_msg = (
            f"Unexpected database error during {operation}: "
            f"{type(exc).__name__}: {exc}{context_str}"
        )
        logger.error(f"{error_msg}\nTraceback: {traceback.format_exc()}")
        return False, error_msg


def _find_argument(args: tuple, kwargs: dict, kind: Type) -> Any:
    for value in list(args) + list(kwargs.values()):
        if isinstance(value, kind):
            return value
    return None


async def _rollback(db: AsyncSession, operation: str) -> None:
    try:
        await db.rollback()
        logger.debug(f"Transaction rolled back for {operation}")
    except SQLAlchemyError as rollback_exc:
        logger.error(f"Failed to rollback transaction for {operation}: {rollback_exc}")
    finally:
        NotificationOutbox.discard(db)


def lifecycle_operation(
    operation_name: Optional[str] = None,
    *,
    allowed_actors: Iterable[ActorKind] = (),
) -> Callable:
    """
    Run a service coroutine as one transaction and return an OperationResult.

    The wrapped coroutine receives the AsyncSession and Actor among its
    arguments and may return either plain data or an OperationResult.

    Args:
        operation_name: Name used in logs (defaults to the function name)
        allowed_actors: Actor kinds permitted to invoke the operation;
            empty means any actor

    Usage:
        class IssueService:
            @staticmethod
            @lifecycle_operation("start_working", allowed_actors=(ActorKind.HEAD,))
            async def start_working(db: AsyncSession, actor: Actor, issue_id: UUID):
                ...
    """
    allowed = frozenset(allowed_actors)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> OperationResult:
            operation = operation_name or getattr(func, "__name__", "unknown")
            db: Optional[AsyncSession] = _find_argument(args, kwargs, AsyncSession)
            actor: Optional[Actor] = _find_argument(args, kwargs, Actor)
            actor_id = actor.performer_id if actor else None

            if db is None:
                raise TypeError(f"{operation} requires an AsyncSession argument")

            if allowed and (actor is None or actor.kind not in allowed):
                kind = actor.kind.value if actor else "anonymous"
                message = f"{kind.title()} actors cannot perform {operation}"
                lifecycle_logger.operation_rejected(
                    operation, ErrorKind.PERMISSION_DENIED.value, message, actor_id
                )
                return OperationResult.failure(ErrorKind.PERMISSION_DENIED, message)

            NotificationOutbox.discard(db)
            started = time.perf_counter()

            try:
                result = await func(*args, **kwargs)
                await db.commit()

            except DomainError as exc:
                await _rollback(db, operation)
                lifecycle_logger.operation_rejected(
                    operation, exc.kind.value, exc.message, actor_id
                )
                return OperationResult.failure(exc.kind, exc.message)

            except DatabaseErrorHandler.DATABASE_EXCEPTIONS as exc:
                await _rollback(db, operation)
                DatabaseErrorHandler.handle_database_error(
                    exc, operation, {"actor": actor_id}
                )
                return OperationResult.failure(
                    ErrorKind.UNEXPECTED,
                    f"Could not complete {operation.replace('_', ' ')}, please retry",
                )

            except Exception as exc:
                await _rollback(db, operation)
                logger.error(
                    f"Unexpected error in {operation}: {type(exc).__name__}: {exc}\n"
                    f"Traceback: {traceback.format_exc()}"
                )
                return OperationResult.failure(
                    ErrorKind.UNEXPECTED,
                    f"Could not complete {operation.replace('_', ' ')}",
                )

            notifications = NotificationOutbox.pop_all(db)
            if notifications:
                from services.notification_service import NotificationDispatcher

                NotificationDispatcher.dispatch(notifications)

            elapsed_ms = (time.perf_counter() - started) * 1000
            if elapsed_ms > settings.performance.slow_operation_ms:
                logger.warning(f"Slow operation {operation}: {elapsed_ms:.0f}ms")
            else:
                logger.debug(f"Completed {operation} in {elapsed_ms:.0f}ms")

            if isinstance(result, OperationResult):
                return result
            return OperationResult.success(result)

        return wrapper

    return decorator
