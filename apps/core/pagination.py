"""
Pagination for list endpoints.
"""
from django.conf import settings
from rest_framework.pagination import PageNumberPagination

from apps.core.responses import success_response


class StandardResultsSetPagination(PageNumberPagination):
    """
    Page-number pagination rendering {"data": [...], "meta": {...}}.

    The page size is read from the `per_page` query parameter.
    """
    page_size = 15
    page_size_query_param = 'per_page'
    max_page_size = 100

    def __init__(self, page_size=None):
        if page_size is None:
            page_size = getattr(settings, 'RBAC_DEFAULT_PAGE_SIZE', self.page_size)
        self.page_size = page_size

    def get_paginated_data(self, data):
        page = self.page
        return {
            'data': data,
            'meta': {
                'current_page': page.number,
                'last_page': page.paginator.num_pages,
                'per_page': page.paginator.per_page,
                'total': page.paginator.count,
            },
        }

    def get_paginated_response(self, data, message=''):
        return success_response(self.get_paginated_data(data), message)


class AuditLogPagination(StandardResultsSetPagination):
    """Audit trail pages default to a larger page size."""

    def __init__(self):
        super().__init__(getattr(settings, 'RBAC_AUDIT_PAGE_SIZE', 20))
