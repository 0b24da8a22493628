class LifecycleError(Exception):
    """Base exception for the order lifecycle engine."""

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or "An error occurred in the order lifecycle engine"
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        """String representation of the error."""
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class ConfigError(LifecycleError):
    """Exception raised for configuration errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Configuration error"
        super().__init__(message, code, details)


class DatabaseError(LifecycleError):
    """Exception raised for database-related errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Database error"
        super().__init__(message, code, details)


class ValidationError(LifecycleError):
    """Exception raised for invalid arguments or data."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Validation error"
        super().__init__(message, code, details)


class NotFoundError(LifecycleError):
    """Exception raised when a referenced record does not exist."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Record not found"
        super().__init__(message, code, details)


class ProjectionError(LifecycleError):
    """Exception raised for projection matching errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Projection error"
        super().__init__(message, code, details)


class TaskGenerationError(LifecycleError):
    """Exception raised for task generation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Task generation error"
        super().__init__(message, code, details)


class BatchProcessError(LifecycleError):
    """Exception raised for batch processing errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Batch process error"
        super().__init__(message, code, details)
