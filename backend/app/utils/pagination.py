import math
from typing import Any

from sqlalchemy.orm import Query


def paginate(query: Query, page: int, limit: int) -> tuple[list[Any], int]:
    """Return one page of *query* (1-based) and the total row count."""
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, total


def pagination_block(page: int, limit: int, total: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }
