from flask import request

MAX_PAGE_SIZE = 100


def get_pagination(default_limit=10):
    """Read page/limit query params, clamped the same way on every list endpoint."""
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', default_limit, type=int)
    if page < 1:
        page = 1
    if limit < 1 or limit > MAX_PAGE_SIZE:
        limit = default_limit
    return page, limit


def pagination_meta(result):
    return {
        'page': result['page'],
        'limit': result['limit'],
        'total': result['total'],
        'pages': result['pages'],
        'has_next': result['page'] < result['pages'],
        'has_prev': result['page'] > 1,
    }
