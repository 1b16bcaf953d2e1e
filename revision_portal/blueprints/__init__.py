"""
Revision Portal
Helpers shared by the JSON blueprints.
"""

from flask import request


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def page_params(default_limit=200, max_limit=1000):
    """(limit, offset) from ``?limit=&offset=``, clamped to sane bounds."""
    limit = max(1, min(_int_arg("limit", default_limit), max_limit))
    offset = max(_int_arg("offset", 0), 0)
    return limit, offset


def paginate_query(query, default_limit=200, max_limit=1000):
    """Run ``query`` for the requested page; returns (items, total)."""
    limit, offset = page_params(default_limit, max_limit)
    return query.limit(limit).offset(offset).all(), query.count()


def current_user():
    """Acting user id from ``X-User``; authentication happens upstream."""
    return request.headers.get("X-User") or request.headers.get("X-Forwarded-User") or "system"
