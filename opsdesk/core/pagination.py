import math
from opsdesk.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def _as_positive_int(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        number = int(value)
    elif isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if number >= 1 else None


def parse_pagination(page=None, page_size=None, default_page_size: int = DEFAULT_PAGE_SIZE,
                     max_page_size: int = MAX_PAGE_SIZE) -> dict:
    """Normalize raw page/pageSize query values.

    Anything that is not a positive integer falls back to page 1 and the
    default page size; the page size is capped at ``max_page_size``.
    """
    page = _as_positive_int(page) or 1
    page_size = _as_positive_int(page_size) or default_page_size
    if page_size > max_page_size:
        page_size = max_page_size
    return {
        "page": page,
        "pageSize": page_size,
        "limit": page_size,
        "offset": (page - 1) * page_size,
    }


def pagination_meta(total: int, page: int, page_size: int) -> dict:
    total_pages = math.ceil(total / page_size) if page_size > 0 else 0
    return {
        "page": page,
        "pageSize": page_size,
        "total": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPreviousPage": page > 1,
    }


def paginate(query, page=None, page_size=None):
    """Run COUNT and the LIMIT/OFFSET select for an ORM query.

    Returns ``(rows, meta)``.
    """
    params = parse_pagination(page, page_size)
    total = query.order_by(None).count()
    rows = query.offset(params["offset"]).limit(params["limit"]).all()
    return rows, pagination_meta(total, params["page"], params["pageSize"])
