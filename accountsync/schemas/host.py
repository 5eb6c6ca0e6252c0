from typing import Optional
from pydantic import BaseModel

class HostBase(BaseModel):
    alias: str
    hostname: str
    ssh_user: str = "root"
    ssh_port: int = 22
    ssh_key_path: Optional[str] = None
    use_sudo: bool = True

class HostCreate(HostBase):
    ssh_password: Optional[str] = None

class HostRead(HostBase):
    id: int
    has_password: bool = False

class HostStatus(BaseModel):
    id: int
    online: bool
    latency_ms: float
    banner: Optional[str] = None
