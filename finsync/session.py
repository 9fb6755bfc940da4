"""
FinSync - Session and Identity

PURPOSE: Supplies the current authenticated owner id to the stores
SCOPE: Sign-in state, change listeners, password grant against the auth endpoint
DEPENDENCIES: remote.py
"""

import logging
from typing import Callable, List, Optional

from .errors import RemoteRejected
from .remote import AUTH_PREFIX, BackendClient, decode_json

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[str], Optional[str]], None]


class Session:
    """Current principal. Listeners get ``(previous_owner_id, owner_id)`` on every change."""

    def __init__(self, owner_id: Optional[str] = None, access_token: Optional[str] = None):
        self.owner_id = owner_id
        self.access_token = access_token
        self._listeners: List[SessionListener] = []

    @property
    def is_authenticated(self) -> bool:
        return bool(self.owner_id)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, owner_id: str, access_token: Optional[str] = None) -> None:
        previous = self.owner_id
        self.owner_id = owner_id
        self.access_token = access_token
        logger.info(f"Signed in as {owner_id}")
        if previous != owner_id:
            self._notify(previous, owner_id)

    def sign_out(self) -> None:
        previous = self.owner_id
        self.owner_id = None
        self.access_token = None
        if previous is not None:
            logger.info(f"Signed out {previous}")
            self._notify(previous, None)

    def _notify(self, previous: Optional[str], current: Optional[str]) -> None:
        for listener in list(self._listeners):
            listener(previous, current)


class AuthClient:
    """Password sign-in and sign-out against the hosted auth endpoint."""

    def __init__(self, backend: BackendClient, session: Session):
        self.backend = backend
        self.session = session

    async def sign_in_with_password(self, email: str, password: str) -> str:
        """Sign in and return the owner id. Raises ``RemoteRejected`` on failure."""
        response = await self.backend.request(
            'POST', f"{AUTH_PREFIX}/token",
            params={'grant_type': 'password'},
            json={'email': email.strip(), 'password': password},
        )
        payload = decode_json(response, 'auth')
        if not isinstance(payload, dict):
            payload = {}
        user = payload.get('user') or {}
        owner_id = user.get('id')
        if not owner_id:
            raise RemoteRejected("Sign-in response did not include a user", status_code=response.status_code,
                                 retryable=False)
        self.session.sign_in(owner_id, payload.get('access_token'))
        return owner_id

    async def sign_out(self) -> None:
        """Revoke the token remotely and always clear the local session."""
        try:
            if self.session.access_token:
                await self.backend.request('POST', f"{AUTH_PREFIX}/logout")
        except RemoteRejected as e:
            logger.warning(f"Remote sign-out failed, clearing local session anyway: {e.message}")
        finally:
            self.session.sign_out()
