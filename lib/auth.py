"""OAuth 2.0 authentication module for Fitbit API.

This module handles the OAuth 2.0 authorization flow with PKCE, token
refresh, and the retry-after-refresh wrapper used for every API call.

Juan Hernandez-Vargas - 2025
"""

import base64
import functools
import hashlib
import secrets
import threading
import webbrowser
from http.server import BaseHTTPRequestHandler
from http.server import HTTPServer
from typing import Any
from typing import Callable
from typing import Dict
from typing import Optional
from typing import TypeVar
from urllib.parse import parse_qs
from urllib.parse import urlencode
from urllib.parse import urlparse

import requests

import lib.credentials
from lib.errors import AuthenticationExpired
from lib.errors import AuthorizationError
from lib.errors import NotAuthenticated
from lib.errors import SessionExpired
from lib.errors import TokenExchangeFailed
from lib.models import TokenPair


T = TypeVar('T')

DEFAULT_SCOPES = ['sleep', 'heartrate', 'profile']


def generate_code_verifier() -> str:
    """Generate a code verifier for PKCE.

    Returns:
        32 random bytes, URL-safe base64 encoded without padding.
    """
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode('utf-8').rstrip('=')


def generate_code_challenge(verifier: str) -> str:
    """Generate an S256 code challenge from the verifier.

    Args:
        verifier: The code verifier.

    Returns:
        URL-safe base64 of the SHA-256 digest, without padding.
    """
    digest = hashlib.sha256(verifier.encode('ascii')).digest()
    return base64.urlsafe_b64encode(digest).decode('utf-8').rstrip('=')


class FitbitAuth:
    """Handles Fitbit OAuth 2.0 authentication and token lifecycle."""

    AUTHORIZATION_URI = 'https://www.fitbit.com/oauth2/authorize'
    TOKEN_URI = 'https://api.fitbit.com/oauth2/token'

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        store: lib.credentials.CredentialStore,
        scopes: Optional[list[str]] = None,
    ):
        """Initialize FitbitAuth with OAuth credentials.

        Args:
            client_id: OAuth 2.0 client ID.
            client_secret: OAuth 2.0 client secret.
            redirect_url: OAuth 2.0 redirect URL.
            store: Credential store for tokens and the PKCE verifier.
            scopes: Permission scopes to request.
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.store = store
        self.scopes = list(scopes) if scopes else list(DEFAULT_SCOPES)
        self._refresh_lock = threading.Lock()

    def build_authorization_url(self) -> str:
        """Generate the authorization URL for OAuth flow.

        A fresh verifier is stored on every call, invalidating any verifier
        from an earlier, unfinished authorization.

        Returns:
            Authorization URL to open in the browser.
        """
        code_verifier = generate_code_verifier()
        self.store.save_verifier(code_verifier)

        params = {
            'client_id': self.client_id,
            'response_type': 'code',
            'code_challenge': generate_code_challenge(code_verifier),
            'code_challenge_method': 'S256',
            'scope': ' '.join(self.scopes),
            'redirect_uri': self.redirect_url,
        }

        return f'{self.AUTHORIZATION_URI}?{urlencode(params)}'

    def exchange_code(self, code: str) -> TokenPair:
        """Exchange authorization code for access token.

        The stored verifier is consumed whether or not the exchange
        succeeds; after a failure the flow must restart from
        build_authorization_url.

        Args:
            code: Authorization code received from callback.

        Returns:
            The new token pair.

        Raises:
            SessionExpired: If there is no pending verifier.
            TokenExchangeFailed: If the token endpoint rejects the code.
        """
        code_verifier = self.store.pop_verifier()
        if not code_verifier:
            raise SessionExpired('No pending authorization. Start the login flow again.')

        data = {
            'client_id': self.client_id,
            'grant_type': 'authorization_code',
            'code': code,
            'code_verifier': code_verifier,
            'redirect_uri': self.redirect_url,
        }

        tokens = self._request_tokens(data)
        self.store.save_tokens(tokens)
        return tokens

    def refresh(self) -> TokenPair:
        """Refresh the access token using the stored refresh token.

        Returns:
            The new token pair, which fully replaces the stored one.

        Raises:
            NotAuthenticated: If no tokens are stored.
            TokenExchangeFailed: If token refresh fails.
        """
        current = self.store.load_tokens()
        if current is None:
            raise NotAuthenticated('No tokens to refresh. Please authenticate first.')

        data = {
            'grant_type': 'refresh_token',
            'refresh_token': current.refresh_token,
        }

        tokens = self._request_tokens(data)
        self.store.save_tokens(tokens)
        return tokens

    def with_token_refresh(self, fn: Callable[[str], T]) -> Callable[[], T]:
        """Wrap an API call so it is retried once after a token refresh.

        Args:
            fn: Callable taking an access token. It must raise
                AuthorizationError when the API answers HTTP 401.

        Returns:
            Zero-argument callable running fn with the current token.
        """

        @functools.wraps(fn)
        def wrapper() -> T:
            tokens = self.store.load_tokens()
            if tokens is None:
                raise NotAuthenticated('Not authenticated. Please authorize first.')

            try:
                return fn(tokens.access_token)
            except AuthorizationError:
                tokens = self._refresh_after_rejection(tokens.access_token)

            try:
                return fn(tokens.access_token)
            except AuthorizationError as e:
                raise AuthenticationExpired(
                    'Request still unauthorized after refreshing the token. Please authorize again.'
                ) from e

        return wrapper

    def call_authenticated(self, fn: Callable[[str], T]) -> T:
        """Run an API call with the current access token.

        Args:
            fn: Callable taking an access token.

        Returns:
            Whatever fn returns.
        """
        return self.with_token_refresh(fn)()

    def _refresh_after_rejection(self, rejected_token: str) -> TokenPair:
        # Only one refresh runs at a time. A caller that waited on the lock
        # reuses the pair stored by the refresh that ran before it.
        with self._refresh_lock:
            current = self.store.load_tokens()
            if current is not None and current.access_token != rejected_token:
                return current
            return self.refresh()

    def _request_tokens(self, data: Dict[str, Any]) -> TokenPair:
        """POST to the token endpoint using HTTP Basic client authentication.

        Args:
            data: Form fields for the grant.

        Returns:
            Token pair from the response.

        Raises:
            TokenExchangeFailed: On network errors or non-2xx responses.
        """
        auth_header = base64.b64encode(
            f'{self.client_id}:{self.client_secret}'.encode()
        ).decode()

        headers = {
            'Authorization': f'Basic {auth_header}',
            'Content-Type': 'application/x-www-form-urlencoded',
        }

        try:
            response = requests.post(self.TOKEN_URI, headers=headers, data=data, timeout=30)
        except requests.exceptions.RequestException as e:
            raise TokenExchangeFailed('Token endpoint unreachable', payload=str(e)) from e

        if not response.ok:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            raise TokenExchangeFailed(
                f'Token request ({data["grant_type"]}) failed',
                payload=payload,
                status_code=response.status_code,
            )

        try:
            return TokenPair.from_dict(response.json())
        except ValueError as e:
            raise TokenExchangeFailed('Malformed token response', payload=response.text) from e

    def authorize(self) -> TokenPair:
        """Complete the full OAuth authorization flow.

        Returns:
            The new token pair.
        """
        auth_url = self.build_authorization_url()

        print(f'Opening browser for authorization: {auth_url}')
        webbrowser.open(auth_url)

        # Parse redirect URL to get port
        parsed_url = urlparse(self.redirect_url)
        port = parsed_url.port or 8080

        # Start local server to capture callback
        auth_code = self._run_callback_server(port)

        if not auth_code:
            raise ValueError('Authorization failed: No code received')

        return self.exchange_code(auth_code)

    def _run_callback_server(self, port: int) -> Optional[str]:
        """Run a local HTTP server to capture OAuth callback.

        Args:
            port: Port number to run the server on.

        Returns:
            Authorization code from the callback, or None if failed.
        """
        auth_code = None

        class CallbackHandler(BaseHTTPRequestHandler):
            """Handle OAuth callback request."""

            def do_GET(self):
                """Handle GET request from OAuth callback."""
                nonlocal auth_code

                parsed_path = urlparse(self.path)
                query_params = parse_qs(parsed_path.query)

                if 'code' in query_params:
                    auth_code = query_params['code'][0]
                    self.send_response(200)
                    self.send_header('Content-type', 'text/html')
                    self.end_headers()
                    self.wfile.write(
                        b'<html><body><h1>Authorization successful!</h1>'
                        b'<p>You can close this window.</p></body></html>'
                    )
                else:
                    self.send_response(400)
                    self.send_header('Content-type', 'text/html')
                    self.end_headers()
                    self.wfile.write(
                        b'<html><body><h1>Authorization code not found.</h1></body></html>'
                    )

            def log_message(self, format, *args):
                """Suppress server log messages."""
                pass

        server = HTTPServer(('localhost', port), CallbackHandler)
        print(f'Waiting for authorization callback on port {port}...')
        server.handle_request()
        server.server_close()

        return auth_code
