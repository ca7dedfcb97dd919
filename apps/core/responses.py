"""
Response envelope helpers.

All API responses share the shape {"success": bool, "data": ..., "message": str}
so the SPA frontends can handle results and errors uniformly.
"""
from rest_framework import status
from rest_framework.response import Response


def success_response(data=None, message='', status_code=status.HTTP_200_OK):
    """Return a successful envelope."""
    return Response(
        {
            'success': True,
            'data': data,
            'message': message,
        },
        status=status_code
    )


def created_response(data=None, message='Created successfully'):
    """Return a 201 envelope."""
    return success_response(data, message, status.HTTP_201_CREATED)
