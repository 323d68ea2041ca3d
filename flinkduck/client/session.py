import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from .errors import GatewayError, SessionCreationFailed
from .gateway import GatewayClient
from .types import Session, SessionInfo

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionInfo], None]


class SessionCoordinator:
    """Owns the single current gateway session.

    The session is created lazily by ``get_session`` and recreated by the
    next ``get_session`` call once it has been closed or invalidated.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        properties: Optional[Dict[str, str]] = None,
    ) -> None:
        self._gateway = gateway
        self._properties: Dict[str, str] = dict(properties or {})
        self._session: Optional[Session] = None
        self._started_at: Optional[float] = None
        self._lock = asyncio.Lock()
        self._listeners: List[SessionListener] = []

    @property
    def properties(self) -> Dict[str, str]:
        return dict(self._properties)

    @property
    def current(self) -> Optional[Session]:
        return self._session

    @property
    def session_info(self) -> SessionInfo:
        """Snapshot of the current session."""
        session = self._session
        return SessionInfo(
            handle=session.handle if session else None,
            is_active=session is not None,
            started_at=self._started_at,
            age=time.time() - self._started_at if self._started_at else 0.0,
            properties=dict(session.properties if session else self._properties),
        )

    def add_listener(self, callback: SessionListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: SessionListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        info = self.session_info
        for callback in list(self._listeners):
            try:
                callback(info)
            except Exception:
                logger.exception("Error in session listener")

    def _clear(self) -> None:
        self._session = None
        self._started_at = None
        self._notify()

    def update_properties(self, properties: Dict[str, str]) -> None:
        """Merge properties used for the next session creation."""
        self._properties.update(properties)

    async def create_session(
        self, properties: Optional[Dict[str, str]] = None
    ) -> Session:
        """Creates a new session, replacing the current one."""
        async with self._lock:
            return await self._create(properties)

    async def _create(self, properties: Optional[Dict[str, str]] = None) -> Session:
        # Caller holds self._lock
        merged = {**self._properties, **(properties or {})}
        logger.info("Creating new gateway session")
        try:
            handle = await self._gateway.create_session(merged)
        except Exception as e:
            logger.error(f"Failed to create session: {e}")
            self._clear()
            raise SessionCreationFailed(f"Failed to create session: {e}") from e

        self._session = Session(handle=handle, properties=merged)
        self._started_at = time.time()
        logger.info(f"Session created: {handle}")
        self._notify()
        return self._session

    async def get_session(self) -> Session:
        """Returns the current session, creating one if there is none."""
        async with self._lock:
            if self._session is None:
                logger.info("No active session, creating new one")
                return await self._create()
            self._session.last_used = time.time()
            return self._session

    async def validate_session(self) -> bool:
        """Checks the current session still exists on the gateway.

        Clears the session and returns False when the probe fails.
        """
        session = self._session
        if session is None:
            return False

        try:
            await self._gateway.get_session(session.handle)
        except Exception as e:
            logger.warning(f"Session validation failed for {session.handle}: {e}")
            if self._session is session:
                self._clear()
            return False
        return True

    def invalidate(self) -> None:
        """Drops the current session without contacting the gateway."""
        if self._session is not None:
            logger.info(f"Invalidating session {self._session.handle}")
            self._clear()

    async def close_session(self) -> None:
        """Closes the current session. Remote errors are logged, not raised."""
        session = self._session
        if session is None:
            logger.debug("No active session to close")
            return

        try:
            await self._gateway.close_session(session.handle)
            logger.info(f"Session closed: {session.handle}")
        except GatewayError as e:
            logger.warning(f"Error closing session {session.handle}: {e}")
        except Exception:
            logger.exception(f"Unexpected error closing session {session.handle}")
        finally:
            self._clear()

    async def refresh_session(self) -> Session:
        """Closes the current session and opens a new one."""
        logger.info("Refreshing session")
        async with self._lock:
            await self.close_session()
            return await self._create()
