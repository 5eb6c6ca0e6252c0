from typing import Optional
from sqlmodel import Field, SQLModel

class Host(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    alias: str = Field(index=True, unique=True)  # Friendly name
    hostname: str = Field(index=True)  # IP or FQDN
    ssh_user: str = Field(default="root")
    ssh_port: int = Field(default=22)
    ssh_password: Optional[str] = Field(default=None)  # Fernet token, see core.security
    ssh_key_path: Optional[str] = Field(default=None)  # None falls back to the default key
    use_sudo: bool = Field(default=True)
