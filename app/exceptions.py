import logging

from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class APIException(Exception):
    """ Base class for all exceptions in the Catalog API. """
    pass


class CategoryIntegrityError(APIException):
    """
    Exception is raised when the persisted category hierarchy already violates
    one of its invariants (a parent cycle, or an ascent that never reaches a root).
    It is never a client error and is never corrected automatically.
    """

    def __init__(self, message: str, category_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.category_id = category_id


class NotFoundException(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestException(HTTPException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ConflictException(HTTPException):
    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class CategoryNotFoundException(NotFoundException):
    def __init__(self, detail: str = "Category not found"):
        super().__init__(detail=detail)


class InvalidParentException(BadRequestException):
    """ Exception is raised when parent_id references a category that does not exist. """

    def __init__(self, detail: str = "Invalid parent category ID"):
        super().__init__(detail=detail)


class CircularReferenceException(BadRequestException):
    """ Exception is raised when a parent assignment would make a category its own ancestor. """

    def __init__(self, detail: str = "Cannot set parent: would create circular reference"):
        super().__init__(detail=detail)


class SlugConflictException(ConflictException):
    """ Exception is raised when a user supplied slug is already taken. """

    def __init__(self, slug: str):
        super().__init__(detail=f"Category with slug '{slug}' already exists")
        self.slug = slug


class CategoryDeletionBlockedException(ConflictException):
    """ Exception is raised when a category still has products assigned to it. """

    def __init__(self, reason: str, product_count: int = 0):
        super().__init__(detail=reason)
        self.product_count = product_count


def create_exception_handler(status_code: int, detail: Any) -> Callable[[Request, Exception], JSONResponse]:
    async def exception_handler(request: Request, exception: APIException):
        if status_code >= 500:
            logger.error(
                "api.internal_error",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "error": str(exception),
                    "category_id": getattr(exception, "category_id", None),
                },
            )
        return JSONResponse(
            content={"detail": detail},
            status_code=status_code
        )

    return exception_handler
