from sqlalchemy.ext.asyncio import AsyncSession
from typing import AsyncGenerator, Optional, Tuple

from ..db.database import AsyncSessionLocal
from ..exceptions import BadRequestException


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Asynchronous dependency that provides a database session for FastAPI routes.

    Yields:
        AsyncSession: An instance of the asynchronous database session.

    Usage:
        Use as a dependency in FastAPI endpoints to access the database session.
        The session is closed after the request is processed; a transaction left
        open by a failed or abandoned request is rolled back on close.
    """

    async with AsyncSessionLocal() as db:
        yield db
        await db.close()


def parse_parent_filter(parent_id: Optional[str]) -> Tuple[Optional[int], bool]:
    """
    Parse the ``parent_id`` query filter.

    Returns ``(parent_id, roots_only)``: ``"root"`` or ``"null"`` selects root
    categories, an integer selects the children of that category.
    """
    if parent_id is None or parent_id == "":
        return None, False
    if parent_id.lower() in ("root", "null"):
        return None, True
    try:
        return int(parent_id), False
    except ValueError:
        raise BadRequestException("parent_id must be a category ID, 'root' or 'null'")
