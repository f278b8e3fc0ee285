"""
Error taxonomy for the connection manager.

Every error carries the HTTP status it maps to and a ``public_message``
that is safe to show to the end user. ``str(exc)`` may hold more detail
for the server log.
"""

from __future__ import annotations

from typing import Iterable, Optional

RETRY_CONNECT_MESSAGE = "OAuth session expired or invalid. Please retry connecting."


class ConnectorError(Exception):
    status_code: int = 400
    public_message: str = "Connection request failed"

    def __init__(self, detail: Optional[str] = None, *, public_message: Optional[str] = None) -> None:
        super().__init__(detail or public_message or self.public_message)
        if public_message is not None:
            self.public_message = public_message
        elif detail is not None:
            self.public_message = detail


class InvalidPlatform(ConnectorError):
    def __init__(self, platform: str) -> None:
        super().__init__(f"Unknown platform: {platform!r}")
        self.platform = platform


class ProviderNotConfigured(ConnectorError):
    def __init__(self, platform: str, missing: Iterable[str] = ()) -> None:
        self.platform = platform
        self.missing = list(missing)
        detail = f"OAuth not configured for {platform}"
        if self.missing:
            detail += f". Missing: {', '.join(self.missing)}"
        super().__init__(detail)


class NotAuthenticated(ConnectorError):
    status_code = 401
    public_message = "Not authenticated"


class ProjectAccessDenied(ConnectorError):
    status_code = 403
    public_message = "You do not have access to this project"


class MissingParameters(ConnectorError):
    public_message = "Missing required parameters"


class InvalidOrExpiredState(ConnectorError):
    """State/CSRF failures never leak internals to the user."""

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail or "invalid or expired state", public_message=RETRY_CONNECT_MESSAGE)


class PlatformMismatch(ConnectorError):
    def __init__(self, expected: str, received: str) -> None:
        super().__init__(
            f"state was issued for {expected}, callback was for {received}",
            public_message=RETRY_CONNECT_MESSAGE,
        )
        self.expected = expected
        self.received = received


class TokenExchangeFailed(ConnectorError):
    status_code = 502

    def __init__(self, platform: str, reason: str) -> None:
        super().__init__(f"Token exchange failed for {platform}: {reason}")
        self.platform = platform
        self.reason = reason


class ProfileFetchFailed(ConnectorError):
    """Non-fatal: caught inside the callback handler and logged."""

    status_code = 502


class ConnectionNotFound(ConnectorError):
    """Disconnecting a never-connected platform; callers treat it as success."""

    status_code = 404
    public_message = "Connection not found"


class BlogCredentialsInvalid(ConnectorError):
    status_code = 401
    public_message = (
        "Invalid WordPress credentials or site URL. Please check your credentials "
        "and ensure Application Passwords are enabled."
    )

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail, public_message=self.public_message)


class AccountAlreadyLinked(ConnectorError):
    status_code = 409

    def __init__(self, platform: str, other_project_name: str) -> None:
        super().__init__(
            f"This {platform} account is already connected to project "
            f'"{other_project_name}". Each account can only be linked to one project.'
        )


class ReconnectRequired(ConnectorError):
    status_code = 409

    def __init__(self, platform: str, reason: str) -> None:
        super().__init__(
            f"{platform} token could not be renewed: {reason}",
            public_message=f"Your {platform} connection has expired. Please reconnect.",
        )


class AuthorizationDenied(ConnectorError):
    """The provider redirected back with ``error`` instead of a code."""

    def __init__(self, platform: str, error: str, description: Optional[str] = None) -> None:
        message = (description or error or "Authorization was not granted").strip()[:300]
        super().__init__(
            f"{platform or 'provider'} returned error={error!r}: {message}",
            public_message=message,
        )
        self.platform = platform
        self.error = error
