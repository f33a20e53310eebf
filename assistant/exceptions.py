"""Custom exceptions for the expense assistant."""


class BackendConnectionError(Exception):
    """Raised when the completion backend cannot be reached."""
    pass


class BackendModelError(Exception):
    """Raised when the configured model or deployment does not exist."""
    pass


class ToolArgumentError(Exception):
    """Raised when tool call arguments do not match the tool's schema."""
    pass


class PromptTemplateError(Exception):
    """Raised when a prompt template fails to render."""
    pass


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass
