import math

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def normalize_page(page: int | None, limit: int | None) -> tuple[int, int, int]:
    page = max(1, int(page or DEFAULT_PAGE))
    limit = max(1, min(int(limit or DEFAULT_LIMIT), MAX_LIMIT))
    return page, limit, (page - 1) * limit


def build_pagination(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if limit else 0,
    }
