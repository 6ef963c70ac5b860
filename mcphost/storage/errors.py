"""
Storage-specific exceptions.

This module defines the exception hierarchy for persisted server
configuration, enabling precise error handling at different layers.
"""


class StorageError(Exception):
    """
    Base exception for storage errors.

    All storage-related exceptions inherit from this base class,
    allowing catch-all error handling when needed.
    """
    pass


class StorageConnectionError(StorageError):
    """
    Storage connection failed.

    Raised when:
    - The database cannot be opened
    - The store is used before connect() or after close()
    """
    pass


class QueryError(StorageError):
    """
    Query execution failed.

    Raised when:
    - A statement fails at the database
    - A stored row cannot be decoded back into a descriptor
    """
    pass


class MigrationError(StorageError):
    """
    Importing legacy configuration failed.

    Raised when:
    - The legacy servers file exists but is not valid JSON
    - The legacy file does not contain a list of servers
    """
    pass


class IntegrityError(StorageError):
    """
    Data integrity violation.

    Raised when:
    - A value to persist cannot be serialized
    - A unique constraint is violated
    """
    pass
