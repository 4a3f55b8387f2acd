"""Pagination for list endpoints under /api/v1/."""

from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Page number pagination; mobile clients may ask for up to 100 rows."""

    page_size = 25
    page_size_query_param = "page_size"
    max_page_size = 100
