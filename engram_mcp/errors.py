"""
Shared error types for the Engram MCP core.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type


class ConfigError(ValueError):
    """Raised at startup when the environment describes an invalid configuration."""
