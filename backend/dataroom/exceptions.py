"""
Error taxonomy for the dataroom services.

Every service failure is raised as a DataroomError subclass carrying the
HTTP status the API boundary answers with. Views catch DataroomError and
return a uniform {'error': message} body.
"""

from rest_framework import status


class DataroomError(Exception):
    """Base class for all expected dataroom failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'Dataroom operation failed'

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


class ValidationError(DataroomError):
    """Missing or malformed input (no file payload, no file id, bad payload)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid input'


class NotFound(DataroomError):
    """Referenced id does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found'


class StoreCorrupt(DataroomError):
    """A JSON document is missing or could not be parsed."""

    default_message = 'Data store is corrupt or unreadable'


class BlobIOFailure(DataroomError):
    """Physical read/write/delete of an uploaded file failed."""

    default_message = 'File storage operation failed'
