"""
Governance Signal Engine
Blueprint registry.
"""

from flask import request


def paginate_args(default_per_page=20, max_per_page=200):
    """Read page/per_page query params, clamped to sane bounds.

    Returns:
        (page, per_page)
    """
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        per_page = min(max(int(request.args.get("per_page", default_per_page)), 1), max_per_page)
    except (ValueError, TypeError):
        per_page = default_per_page
    return page, per_page


def parse_bool(value) -> bool:
    """Truthiness for JSON/query flags: true, "true", "1", "yes", 1."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")
