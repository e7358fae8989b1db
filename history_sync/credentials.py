"""Bearer token providers for the history API.

Obtaining tokens (the OAuth login flow) happens elsewhere; this module only
hands out a currently valid access token or fails with CredentialError.
"""

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path

from .config import Config
from .errors import CredentialError

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "HISTORY_SYNC_TOKEN"

# Tokens this close to expiry are treated as expired
EXPIRY_MARGIN_SECONDS = 60


class TokenProvider(ABC):
    """Source of bearer tokens for API requests."""

    @abstractmethod
    async def get_token(self) -> str:
        """Return a valid access token.

        Raises:
            CredentialError: If no valid token is available.
        """


class StaticTokenProvider(TokenProvider):
    """Provider for a fixed token, e.g. from the environment."""

    def __init__(self, token: str):
        self._token = token

    async def get_token(self) -> str:
        if not self._token:
            raise CredentialError("empty access token")
        return self._token


class FileTokenProvider(TokenProvider):
    """Provider reading a JSON token file written by the login flow.

    The file holds ``{"access_token": ..., "expires_at": <epoch seconds>}``;
    ``expires_at`` is optional.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    async def get_token(self) -> str:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise CredentialError(
                f"not authenticated: no token file at {self.path}"
            ) from e
        except (OSError, json.JSONDecodeError) as e:
            raise CredentialError(f"cannot read token file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise CredentialError(f"token file {self.path} is not a JSON object")

        token = data.get("access_token")
        if not token or not isinstance(token, str):
            raise CredentialError(f"no access token in {self.path}")

        expires_at = data.get("expires_at")
        if (
            isinstance(expires_at, (int, float))
            and expires_at - time.time() < EXPIRY_MARGIN_SECONDS
        ):
            raise CredentialError("access token expired, please log in again")

        return token


def default_token_provider(config: Config) -> TokenProvider:
    """Use the token from the environment if set, otherwise the token file."""
    if token := os.environ.get(TOKEN_ENV_VAR):
        logger.debug(f"Using access token from {TOKEN_ENV_VAR}")
        return StaticTokenProvider(token)
    return FileTokenProvider(config.token_path)
