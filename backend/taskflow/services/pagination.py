from collections.abc import Collection

from sqlalchemy.orm import Query

from taskflow.core.errors import InvalidRequestError


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def paginate(
    query: Query,
    model,
    page: int = 0,
    size: int = DEFAULT_PAGE_SIZE,
    sort: str = "-created_at",
    *,
    sortable: Collection[str],
) -> dict:
    """Apply ``sort`` (``field`` or ``-field``) and a page window to ``query``.

    Only columns named in ``sortable`` may be sorted on. Returns a dict shaped
    like :class:`taskflow.db.schemas.Page`.
    """
    if page < 0:
        raise InvalidRequestError("page must be >= 0")
    if size < 1 or size > MAX_PAGE_SIZE:
        raise InvalidRequestError(f"size must be between 1 and {MAX_PAGE_SIZE}")

    descending = sort.startswith("-")
    field = sort.lstrip("-")
    column = model.__table__.c.get(field) if field in sortable else None
    if column is None:
        raise InvalidRequestError(f"Cannot sort by '{field}'")

    total = query.order_by(None).count()
    ordering = column.desc() if descending else column.asc()
    items = query.order_by(ordering, model.id.asc()).offset(page * size).limit(size).all()
    return {"items": items, "total": total, "page": page, "size": size}
