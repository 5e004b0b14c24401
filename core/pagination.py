from django.conf import settings
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

CONF = settings.SCHOOL_MANAGEMENT


class StandardPagination(PageNumberPagination):
    page_size = CONF["DEFAULT_PAGE_SIZE"]
    page_size_query_param = "limit"
    max_page_size = CONF["MAX_PAGE_SIZE"]

    def get_paginated_response(self, data):
        page = self.page
        return Response(
            {
                "results": data,
                "total_count": page.paginator.count,
                "current_page": page.number,
                "total_pages": page.paginator.num_pages,
                "has_next_page": page.has_next(),
                "has_prev_page": page.has_previous(),
            }
        )
