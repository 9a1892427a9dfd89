"""Custom exceptions for the co-pilot pipeline"""


class CopilotError(Exception):
    """Base exception for co-pilot errors"""
    pass


class ConfigurationError(CopilotError):
    """Configuration loading errors"""
    pass


class StoreError(CopilotError):
    """Document store operation errors"""
    pass


class DocumentNotFoundError(StoreError):
    """Raised when a document to read or update does not exist"""
    pass


class PreconditionFailedError(StoreError):
    """Raised when a conditional update finds a field changed since it was read"""

    def __init__(self, field, expected, actual):
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {field}={expected!r}, found {actual!r}")


class LLMError(CopilotError):
    """LLM API errors"""
    pass


class InvalidTransitionError(CopilotError):
    """Lifecycle event not permitted from the current status"""

    def __init__(self, current, event):
        self.current = current
        self.event = event
        super().__init__(f"Event '{getattr(event, 'value', event)}' not allowed from status '{getattr(current, 'value', current)}'")

