"""
Error taxonomy for lead distribution.

Each error carries a stable `code` for webhook producers, the HTTP status the
API answers with, and whether retrying the same request is safe.
"""
from typing import List, Optional


class DistributionError(Exception):
    """Base class for errors that abort a distribution before commit."""

    code = 'distribution_error'
    http_status = 500
    retryable = False
    default_message = 'Failed to process lead'

    def __init__(self, message: Optional[str] = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        data = {
            'error': self.code,
            'message': self.message,
            'retryable': self.retryable,
        }
        data.update(self.context)
        return data


class LeadValidationError(DistributionError):
    """Missing or malformed inbound fields."""

    code = 'validation_error'
    http_status = 400
    default_message = 'Lead data is invalid'

    def __init__(self, message: Optional[str] = None, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[List[str]] = None, **context):
        super().__init__(
            message,
            missing_fields=missing_fields or [],
            invalid_fields=invalid_fields or [],
            **context
        )
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or []


class RotationNotFound(DistributionError):
    code = 'rotation_not_found'
    http_status = 404
    default_message = 'Round robin not found'


class RotationNotLaunched(DistributionError):
    code = 'rotation_not_launched'
    http_status = 409
    default_message = 'Round robin is not active'


class EmptyRoster(DistributionError):
    code = 'empty_roster'
    http_status = 503
    retryable = True
    default_message = 'No participants found in round robin'


class NoAvailableParticipant(DistributionError):
    code = 'no_available_participant'
    http_status = 503
    retryable = True
    default_message = 'All participants are paused or inactive'


class StorageError(DistributionError):
    code = 'storage_error'
    http_status = 500
    retryable = True
    default_message = 'Failed to process lead'
