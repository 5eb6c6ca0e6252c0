import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

import asyncssh

from accountsync.core.config import get_settings
from accountsync.remote.credentials import CredentialSource, resolve_credentials
from accountsync.remote.errors import AuthError, NetworkError

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class Session:
    """One authenticated SSH connection to a single host.

    The connection is shared by every operation against the host, and
    ``lock`` keeps at most one command in flight on it.
    """
    host: str
    port: int
    username: str
    use_sudo: bool
    connection: asyncssh.SSHClientConnection
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def closed(self) -> bool:
        return self.connection.is_closed()

    async def close(self) -> None:
        self.connection.close()
        await self.connection.wait_closed()
        logger.info(f"SSH session to {self.address} closed")


async def connect(
    host: str,
    port: int,
    username: str,
    credentials: CredentialSource,
    use_sudo: bool = True,
    known_hosts: Optional[str] = None,
    connect_timeout: Optional[float] = None,
) -> Session:
    """Opens an authenticated SSH session to ``host:port``.

    Raises:
        AuthError: no credential was usable or the server rejected them all.
        NetworkError: DNS, TCP connect, handshake or timeout failure.
    """
    plan = await resolve_credentials(credentials)
    known_hosts = known_hosts if known_hosts is not None else settings.KNOWN_HOSTS
    if not known_hosts:
        logger.warning(f"Host key verification disabled for {host}:{port}, set ACCOUNTSYNC_KNOWN_HOSTS to pin host keys")

    try:
        connection = await asyncssh.connect(
            host,
            port=port,
            username=username,
            known_hosts=known_hosts or None,
            connect_timeout=connect_timeout or settings.CONNECT_TIMEOUT,
            **plan.options,
        )
    except asyncssh.PermissionDenied as exc:
        raise AuthError(f"Authentication to {username}@{host}:{port} failed ({plan.summary()}): {exc.reason}") from exc
    except asyncssh.HostKeyNotVerifiable as exc:
        raise NetworkError(f"Host key for {host}:{port} not trusted: {exc.reason}") from exc
    except asyncssh.Error as exc:
        raise NetworkError(f"Failed to dial {host}:{port}: {exc.reason}") from exc
    except (OSError, asyncio.TimeoutError) as exc:
        raise NetworkError(f"Failed to dial {host}:{port}: {exc}") from exc
    finally:
        await plan.close()

    logger.info(f"SSH client connected to {username}@{host}:{port}")
    return Session(host=host, port=port, username=username, use_sudo=use_sudo, connection=connection)
