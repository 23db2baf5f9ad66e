from typing import Callable, Optional, Protocol


class CredentialsProvider(Protocol):
    """Source of the bearer token attached to Assessment API calls."""

    def get_token(self) -> Optional[str]:
        ...

    def on_unauthorized(self) -> None:
        """Called once per 401 so the host can end the session."""
        ...


class StaticCredentials:
    def __init__(self, token: Optional[str], on_unauthorized: Optional[Callable[[], None]] = None):
        self._token = token
        self._on_unauthorized = on_unauthorized
        self.session_expired = False

    def get_token(self) -> Optional[str]:
        return None if self.session_expired else self._token

    def on_unauthorized(self) -> None:
        self.session_expired = True
        if self._on_unauthorized:
            self._on_unauthorized()
