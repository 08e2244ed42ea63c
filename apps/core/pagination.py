from rest_framework.pagination import PageNumberPagination

from .responses import success_response


class EnvelopePagination(PageNumberPagination):
    """
    Page-number pagination that reports ``page/limit/total/totalPages``
    inside the response envelope.
    """
    page_size = 20
    page_size_query_param = 'limit'
    max_page_size = 100

    def get_paginated_response(self, data):
        return success_response(
            data=data,
            pagination={
                'page': self.page.number,
                'limit': self.get_page_size(self.request),
                'total': self.page.paginator.count,
                'totalPages': self.page.paginator.num_pages,
            }
        )

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'properties': {
                'success': {'type': 'boolean'},
                'data': schema,
                'pagination': {
                    'type': 'object',
                    'properties': {
                        'page': {'type': 'integer'},
                        'limit': {'type': 'integer'},
                        'total': {'type': 'integer'},
                        'totalPages': {'type': 'integer'},
                    },
                },
            },
        }
