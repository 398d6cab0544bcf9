"""OAuth authentication for Google Drive.

Turns a ``client_secret.json`` downloaded from the Google Cloud console
into a refreshable token stored in ``token.json``.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .config import config
from .exceptions import DriveAuthenticationError, DriveConfigError
from .output import OutputFormatter

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive"]


class OAuthManager:
    """Manages OAuth 2.0 credentials for Google Drive."""

    def __init__(
        self,
        client_secret_path: Optional[Path] = None,
        token_path: Optional[Path] = None,
    ):
        """Initialize OAuth manager.

        Args:
            client_secret_path: Path to the OAuth client secret JSON
            token_path: Path to save/load the authorized token
        """
        self.client_secret_path = client_secret_path or config.client_secret_path
        self.token_path = token_path or config.token_path
        self._credentials: Optional[Credentials] = None

    def load_credentials(self) -> Optional[Credentials]:
        """Load saved credentials, refreshing them if they have expired.

        Returns:
            Valid credentials, or None if no usable token is stored
        """
        if not self.token_path.exists():
            return None

        try:
            creds = Credentials.from_authorized_user_file(
                str(self.token_path), SCOPES
            )
        except (ValueError, OSError) as e:
            logger.warning(f"Ignoring unreadable token file {self.token_path}: {e}")
            return None

        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except RefreshError as e:
                logger.warning(f"Token refresh failed: {e}")
                return None
            self._save_token(creds)

        if not creds.valid:
            return None

        self._credentials = creds
        return creds

    def run_login_flow(self) -> Credentials:
        """Run the interactive browser flow and store the resulting token.

        Raises:
            DriveConfigError: If the client secret file is missing
        """
        if not self.client_secret_path.exists():
            raise DriveConfigError(
                f"OAuth client secret not found: {self.client_secret_path}"
            )

        flow = InstalledAppFlow.from_client_secrets_file(
            str(self.client_secret_path), SCOPES
        )
        creds = flow.run_local_server(port=0)
        self._save_token(creds)
        self._credentials = creds
        return creds

    def refresh_access_token(self) -> str:
        """Force a token refresh and return the new access token.

        Used by the Drive client when the server rejects a token mid-run.
        """
        creds = self._credentials or self.load_credentials()
        if creds is None or not creds.refresh_token:
            raise DriveAuthenticationError("No refreshable OAuth token available")
        try:
            creds.refresh(Request())
        except RefreshError as e:
            raise DriveAuthenticationError(f"Token refresh failed: {e}") from e
        self._save_token(creds)
        return creds.token

    def _save_token(self, creds: Credentials) -> None:
        """Save credentials to the token file with owner-only permissions."""
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(creds.to_json(), encoding="utf-8")
        self.token_path.chmod(0o600)
        logger.debug(f"Saved OAuth token to {self.token_path}")


def require_access_token(ctx: Any, out: OutputFormatter) -> tuple[str, Optional[Any]]:
    """Resolve an access token for a CLI command or exit.

    Order: ``--access-token`` option, PYDRIVESYNC_ACCESS_TOKEN / config
    file, then the stored OAuth token.

    Args:
        ctx: Click context
        out: Output formatter for error messages

    Returns:
        Tuple of (access token, token refresher or None)
    """
    token = ctx.obj.get("access_token") or config.access_token
    if token:
        return token, None

    manager = OAuthManager()
    creds = manager.load_credentials()
    if creds is None:
        out.error(
            "No access token available. Run 'pydrivesync login' or set "
            "PYDRIVESYNC_ACCESS_TOKEN."
        )
        ctx.exit(1)
        return "", None  # Unreachable, but helps type checker
    return creds.token, manager.refresh_access_token
