"""
Page-number pagination for browse/search listings.

The feed-style cursor pagination does not fit here: listings sort by several
different keys (newest, likes, downloads, ...) and the frontend shows page
numbers. Response shape:

    {"count": 42, "page": 1, "limit": 20, "pages": 3,
     "next": ..., "previous": ..., "results": [...]}
"""
import math

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class PagePagination(PageNumberPagination):
    page_size = 20
    page_query_param = 'page'
    page_size_query_param = 'limit'
    max_page_size = 100

    def get_paginated_response(self, data):
        count = self.page.paginator.count
        limit = self.page.paginator.per_page
        return Response({
            'count': count,
            'page': self.page.number,
            'limit': limit,
            'pages': math.ceil(count / limit) if limit else 0,
            'next': self.get_next_link(),
            'previous': self.get_previous_link(),
            'results': data,
        })
