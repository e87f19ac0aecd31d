"""
Domain exceptions raised by repositories and service clients.

main.py registers a handler that turns them into JSON error responses
with the status code declared on each class.
"""

from fastapi import status


class MessengerError(Exception):
    """Base class for domain failures."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(MessengerError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(MessengerError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(MessengerError):
    status_code = status.HTTP_409_CONFLICT


class UpstreamError(MessengerError):
    """The AI provider or the real-time platform failed or timed out."""

    status_code = status.HTTP_502_BAD_GATEWAY


class InvalidRequestError(MessengerError):
    """The request is well-formed but not allowed in the current state."""
