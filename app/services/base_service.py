import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import AppError, DatabaseError
from app.repositories.base_repository import BaseRepository
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseService(ABC):
    """Base class for long-running service operations.

    ``execute`` validates the input, runs the operation and normalizes
    failures: application errors pass through, database errors become
    ``DatabaseError`` and anything else becomes ``AppError``.
    """

    def __init__(self, repository: Optional[BaseRepository] = None):
        self.repository = repository
        self.logger = LOGGER

    @property
    def operation_name(self) -> str:
        return self.__class__.__name__

    async def execute(self, *args, **kwargs) -> Any:
        started = time.monotonic()
        try:
            self.validate(*args, **kwargs)
            result = await self.run(*args, **kwargs)
        except AppError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(
                f"{self.operation_name}: database error: {str(e)}",
                exc_info=True,
                extra={"service": self.operation_name},
            )
            raise DatabaseError(f"Database error: {str(e)}", original_error=e) from e
        except Exception as e:
            self.logger.error(
                f"{self.operation_name} failed: {str(e)}",
                exc_info=True,
                extra={"service": self.operation_name},
            )
            raise AppError(f"{self.operation_name} failed: {str(e)}", original_error=e) from e

        self.logger.debug(
            f"{self.operation_name} finished in {time.monotonic() - started:.2f}s"
        )
        return result

    def validate(self, *args, **kwargs) -> None:
        """Reject bad input before any work starts.

        Raises:
            ValidationError: If input is invalid
        """

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """The operation itself."""
