class ListResponseMixin:
    """Adds ``list_response`` wrapping a service's ``list`` in the
    ``{items, count, limit, offset}`` envelope. The last two positional
    arguments of ``list`` must be ``limit`` and ``offset``.
    """

    @classmethod
    def list_response(cls, db, *args, **kwargs):
        items = cls.list(db, *args, **kwargs)
        limit = kwargs.get("limit", args[-2] if len(args) >= 2 else None)
        offset = kwargs.get("offset", args[-1] if args else None)
        return {
            "items": items,
            "count": len(items),
            "limit": limit,
            "offset": offset,
        }
