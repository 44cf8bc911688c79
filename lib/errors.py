"""Exception types raised by the Fitbit auth, client and alarm modules.

Juan Hernandez-Vargas - 2025
"""

from typing import Any
from typing import Optional


class FitbitError(Exception):
    """Base class for all errors raised by this package."""


class SessionExpired(FitbitError):
    """The PKCE code verifier is missing or was already used."""


class NotAuthenticated(FitbitError):
    """No stored credential is available."""


class TokenExchangeFailed(FitbitError):
    """The token endpoint rejected a request or could not be reached."""

    def __init__(self, message: str, payload: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.payload = payload
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            base = f'{base} (HTTP {self.status_code})'
        if self.payload:
            base = f'{base}: {self.payload}'
        return base


class AuthenticationExpired(FitbitError):
    """The call was still unauthorized after refreshing the access token."""


class RemoteUnavailable(FitbitError):
    """The Fitbit API could not be reached or returned a server error."""


class AuthorizationError(FitbitError):
    """An API call was rejected with HTTP 401.

    Raised by API calls wrapped with FitbitAuth.call_authenticated, which
    responds by refreshing the token and retrying once.
    """
