from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


class DomainError(Exception):
    """
    Base class for every failure raised by the booking engine.
    - status_code: HTTP status used by the API layer
    - code: stable machine readable reason
    - retryable: True when the caller can fix the input and try again
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'error'
    retryable = True

    def __init__(self, message, code=None, **details):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def as_payload(self):
        payload = {
            'error': self.message,
            'code': self.code,
            'retryable': self.retryable,
        }
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'validation_error'


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'forbidden'
    retryable = False


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'conflict'


class PolicyError(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = 'policy_error'
    retryable = False


def domain_exception_handler(exc, context):
    """Render DomainError subclasses as {'error', 'code', 'retryable'}; defer everything else to DRF"""
    if isinstance(exc, DomainError):
        return Response(exc.as_payload(), status=exc.status_code)
    return exception_handler(exc, context)
