"""Login handshake and credential ownership."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import ControlLinkAuthError, ControlLinkClientError
from .events import ClientEvent, EventDispatcher
from .payloads import (
    AuthLoginPayload,
    AuthLoginResult,
    AuthValidatePayload,
    AuthValidateResult,
    UserInfo,
)
from .protocol import MessageType
from .state import ConnectionState, ConnectionStateMachine

_LOGGER = logging.getLogger(__name__)

RequestSender = Callable[[MessageType, Any], Awaitable[Any]]


@dataclass(frozen=True)
class Credentials:
    """Session obtained from a successful ``auth_login``.

    Bound to the connection generation it was issued on.
    """

    token: str = field(repr=False)
    expires_in: int
    token_type: str
    scope: tuple[str, ...]
    user: UserInfo
    issued_at: float
    connection: int

    @classmethod
    def from_login(cls, result: AuthLoginResult, *, connection: int) -> Credentials:
        return cls(
            token=result.token,
            expires_in=result.expires_in,
            token_type=result.token_type,
            scope=result.scope,
            user=result.user,
            issued_at=time.time(),
            connection=connection,
        )

    @property
    def expires_at(self) -> float:
        return self.issued_at + self.expires_in

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at

    @property
    def authorization(self) -> str:
        """Value for an ``Authorization`` header."""
        return f"{self.token_type} {self.token}"


class AuthSession:
    """Drive login/validate/logout and hold the resulting credentials.

    Credentials are only written here. The client calls :meth:`invalidate`
    whenever the connection leaves ``CONNECTED``/``AUTHENTICATED``.
    """

    def __init__(
        self,
        send: RequestSender,
        states: ConnectionStateMachine,
        events: EventDispatcher,
        *,
        name: str = "control-link",
    ) -> None:
        self._send = send
        self._states = states
        self._events = events
        self._name = name
        self._credentials: Credentials | None = None

    @property
    def credentials(self) -> Credentials | None:
        return self._credentials

    @property
    def token(self) -> str | None:
        return self._credentials.token if self._credentials else None

    @property
    def is_authenticated(self) -> bool:
        return (
            self._credentials is not None
            and self._states.state is ConnectionState.AUTHENTICATED
        )

    async def login(self, username: str, password: str) -> Credentials:
        """Authenticate the current connection.

        On failure the connection stays up, ``authentication_failed`` is
        emitted and :class:`ControlLinkAuthError` is raised.
        """
        generation = self._states.generation
        _LOGGER.debug("[%s] Login as %s", self._name, username)

        try:
            result: AuthLoginResult = await self._send(
                MessageType.AUTH_LOGIN,
                AuthLoginPayload(username=username, password=password),
            )
        except ControlLinkClientError as err:
            self._fail(str(err) or "Authentication failed")
            raise ControlLinkAuthError(str(err) or "Authentication failed") from err

        # The response must belong to the connection that is still open.
        if self._states.generation != generation or not self._states.is_open:
            self._fail("Connection changed during login")
            raise ControlLinkAuthError("Connection changed during login")

        credentials = Credentials.from_login(result, connection=generation)
        self._credentials = credentials
        self._states.transition(ConnectionState.AUTHENTICATED)
        _LOGGER.info(
            "[%s] Authenticated as %s (expires in %ds)",
            self._name,
            credentials.user.username,
            credentials.expires_in,
        )
        self._events.emit(ClientEvent.AUTHENTICATED, credentials)
        return credentials

    async def validate_token(self, token: str) -> AuthValidateResult:
        """Ask the server whether ``token`` is valid. Does not change state."""
        result: AuthValidateResult = await self._send(
            MessageType.AUTH_VALIDATE, AuthValidatePayload(token=token)
        )
        _LOGGER.debug("[%s] Token valid: %s", self._name, result.valid)
        return result

    async def logout(self) -> None:
        """Log out. Request errors are logged; local state is always cleared."""
        try:
            await self._send(MessageType.AUTH_LOGOUT, {})
        except ControlLinkClientError as err:
            _LOGGER.debug("[%s] Logout request failed: %s", self._name, err)
        finally:
            self._credentials = None
            if self._states.state is ConnectionState.AUTHENTICATED:
                self._states.transition(ConnectionState.CONNECTED)
            _LOGGER.info("[%s] Logged out", self._name)

    def invalidate(self) -> None:
        if self._credentials is not None:
            _LOGGER.debug("[%s] Session invalidated", self._name)
        self._credentials = None

    def _fail(self, error: str) -> None:
        _LOGGER.warning("[%s] Authentication failed: %s", self._name, error)
        self._events.emit(ClientEvent.AUTHENTICATION_FAILED, error)
