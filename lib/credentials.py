"""File-backed storage for the OAuth token pair and PKCE verifier.

Juan Hernandez-Vargas - 2025
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from lib.errors import NotAuthenticated
from lib.models import TokenPair


DEFAULT_TOKEN_FILE = '.fitbit_tokens.json'
DEFAULT_VERIFIER_FILE = '.fitbit_pkce_verifier'


def _atomic_write(path: Path, text: str) -> None:
    """Replace the contents of a file in one step.

    Args:
        path: Destination file.
        text: New file contents.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w') as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class CredentialStore:
    """Durable single-record store for the token pair and PKCE verifier."""

    def __init__(
        self,
        token_file: str = DEFAULT_TOKEN_FILE,
        verifier_file: str = DEFAULT_VERIFIER_FILE,
    ):
        """Initialize CredentialStore.

        Args:
            token_file: Path of the JSON file holding the token pair.
            verifier_file: Path of the file holding the pending PKCE verifier.
        """
        self.token_file = Path(token_file)
        self.verifier_file = Path(verifier_file)

    def save_tokens(self, tokens: TokenPair) -> None:
        """Save tokens, replacing any previously stored pair.

        Args:
            tokens: Token pair to save.
        """
        _atomic_write(self.token_file, json.dumps(tokens.to_dict(), indent=2))

    def load_tokens(self) -> Optional[TokenPair]:
        """Load the stored token pair.

        Returns:
            TokenPair, or None if nothing has been saved yet.

        Raises:
            NotAuthenticated: If the token file cannot be parsed.
        """
        if not self.token_file.exists():
            return None

        try:
            with open(self.token_file, 'r') as f:
                token_data = json.load(f)
            return TokenPair.from_dict(token_data)
        except (ValueError, AttributeError) as e:
            raise NotAuthenticated(
                f'Token file {self.token_file} is unreadable. Please authenticate again.'
            ) from e

    def save_verifier(self, verifier: str) -> None:
        """Store the PKCE verifier, overwriting any unused one."""
        _atomic_write(self.verifier_file, verifier)

    def pop_verifier(self) -> Optional[str]:
        """Read and delete the stored PKCE verifier.

        Returns:
            The verifier, or None if there is none pending.
        """
        try:
            verifier = self.verifier_file.read_text().strip()
        except FileNotFoundError:
            return None

        self.verifier_file.unlink(missing_ok=True)
        return verifier or None

    def clear(self) -> None:
        """Remove stored tokens and any pending verifier."""
        self.token_file.unlink(missing_ok=True)
        self.verifier_file.unlink(missing_ok=True)
