from typing import List, Optional
from sqlmodel import Session, select
import logging

from accountsync.core.security import encrypt_secret
from accountsync.models import Host
from accountsync.schemas.host import HostCreate, HostRead
from accountsync.utils.network import check_ssh

logger = logging.getLogger(__name__)


class InventoryService:
    """Stores the connection configuration of managed hosts."""

    def __init__(self, db: Session):
        self.db = db

    def list_hosts(self) -> List[Host]:
        return list(self.db.exec(select(Host).order_by(Host.alias)).all())

    def get_host(self, host_id: int) -> Optional[Host]:
        return self.db.get(Host, host_id)

    def get_host_by_alias(self, alias: str) -> Optional[Host]:
        return self.db.exec(select(Host).where(Host.alias == alias)).first()

    def create_host(self, data: HostCreate) -> Host:
        """Persists a host. The SSH password is stored Fernet-encrypted."""
        host = Host(
            alias=data.alias,
            hostname=data.hostname,
            ssh_user=data.ssh_user,
            ssh_port=data.ssh_port,
            ssh_password=encrypt_secret(data.ssh_password) if data.ssh_password else None,
            ssh_key_path=data.ssh_key_path,
            use_sudo=data.use_sudo,
        )
        self.db.add(host)
        self.db.commit()
        self.db.refresh(host)
        logger.info(f"Host {host.alias} ({host.hostname}:{host.ssh_port}) added to inventory")
        return host

    def delete_host(self, host_id: int) -> bool:
        host = self.db.get(Host, host_id)
        if not host:
            return False
        self.db.delete(host)
        self.db.commit()
        logger.info(f"Host {host.alias} removed from inventory")
        return True

    @staticmethod
    def to_read(host: Host) -> HostRead:
        return HostRead(
            id=host.id,
            alias=host.alias,
            hostname=host.hostname,
            ssh_user=host.ssh_user,
            ssh_port=host.ssh_port,
            ssh_key_path=host.ssh_key_path,
            use_sudo=host.use_sudo,
            has_password=bool(host.ssh_password),
        )

    @staticmethod
    async def probe(host: Host) -> tuple[bool, float, Optional[str]]:
        return await check_ssh(host.hostname, host.ssh_port)
