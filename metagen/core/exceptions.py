"""Custom exception classes for the application."""

from typing import Any


class MetaGenError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Prompt State Errors
class PromptStateError(MetaGenError):
    """Persisted prompt files are missing or malformed."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Prompt state error in {path}: {message}", {"path": path})


# External API Errors
class ExternalAPIError(MetaGenError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str) -> None:
        self.api_name = api_name
        super().__init__(f"{api_name} API error: {message}")


class RateLimitExceededError(ExternalAPIError):
    """Rate limit exceeded for external API."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "Rate limit exceeded")


class APIKeyMissingError(ExternalAPIError):
    """API key not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "API key not configured")
