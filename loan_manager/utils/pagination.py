import math


def clamp_page(page: int, limit: int, max_limit: int = 100):
    page = max(1, page)
    limit = max(1, min(limit, max_limit))
    return page, limit


def paginate(query, page: int, limit: int):
    """Slice an ORM query; returns (rows, meta) with the page/limit actually used."""
    page, limit = clamp_page(page, limit)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    meta = {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
    return rows, meta
