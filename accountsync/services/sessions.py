import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from accountsync.core.security import decrypt_secret
from accountsync.models import Host
from accountsync.remote.credentials import CredentialSource
from accountsync.remote.executor import CommandExecutor
from accountsync.remote.transport import Session, connect

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Session]]


class SessionManager:
    """Keeps one SSH Session per inventory host.

    Sessions are opened on first use and held until the host is evicted or
    the application shuts down. Operations for different hosts may run in
    parallel; commands on one host are serialized by the Session's lock.
    """

    def __init__(self, connector: Optional[Connector] = None):
        self._connector = connector or connect
        self._sessions: dict[int, Session] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    def _get_lock(self, host_id: int) -> asyncio.Lock:
        if host_id not in self._locks:
            self._locks[host_id] = asyncio.Lock()
        return self._locks[host_id]

    @staticmethod
    def credentials_for(host: Host) -> CredentialSource:
        return CredentialSource(
            password=decrypt_secret(host.ssh_password) or None,
            key_path=Path(host.ssh_key_path) if host.ssh_key_path else None,
        )

    async def get(self, host: Host) -> Session:
        async with self._get_lock(host.id):
            session = self._sessions.get(host.id)
            if session is not None and not session.closed:
                return session
            session = await self._connector(
                host.hostname,
                host.ssh_port,
                host.ssh_user,
                self.credentials_for(host),
                use_sudo=host.use_sudo,
            )
            self._sessions[host.id] = session
            return session

    async def executor_for(self, host: Host) -> CommandExecutor:
        return CommandExecutor(await self.get(host))

    async def evict(self, host_id: int) -> None:
        session = self._sessions.pop(host_id, None)
        if session is None:
            return
        logger.info(f"Dropping SSH session to {session.address}")
        await session.close()

    async def close_all(self) -> None:
        for host_id in list(self._sessions):
            await self.evict(host_id)


session_manager = SessionManager()
