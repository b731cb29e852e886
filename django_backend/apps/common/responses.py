from django.utils import timezone


def envelope(success=True, data=None, error=None):
    return {
        "success": success,
        "data": data,
        "error": error,
        "timestamp": timezone.now().isoformat(),
    }


def paginated(items, total, page, limit):
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit if limit else 0,
        },
    }
