from typing import Set
from pydantic import BaseModel, Field, field_serializer

from accountsync.core.config import get_settings

settings = get_settings()


class UserSpec(BaseModel):
    """Desired state of a user account.

    ``uid`` and ``gid`` of 0 mean "let the remote host pick". An empty
    ``home`` means ``/home/<name>`` on create and "leave as is" on update.
    """
    name: str = Field(min_length=1)
    uid: int = Field(default=0, ge=0)
    gid: int = Field(default=0, ge=0)
    comment: str = ""
    home: str = ""
    create_home: bool = True
    shell: str = settings.DEFAULT_SHELL
    groups: Set[str] = Field(default_factory=set)
    system: bool = False


class UserRecord(BaseModel):
    """Observed state of a user account on a remote host."""
    name: str
    uid: int
    gid: int
    comment: str = ""
    home: str = ""
    create_home: bool = True
    shell: str = ""
    groups: Set[str] = Field(default_factory=set)
    system: bool = False

    @field_serializer("groups")
    def _sorted_groups(self, groups: Set[str]) -> list[str]:
        return sorted(groups)


class GroupSpec(BaseModel):
    """Desired state of a group. ``gid`` of 0 lets the remote host pick."""
    name: str = Field(min_length=1)
    gid: int = Field(default=0, ge=0)
    system: bool = False


class GroupRecord(BaseModel):
    """Observed state of a group on a remote host."""
    name: str
    gid: int
    system: bool = False
    members: Set[str] = Field(default_factory=set)

    @field_serializer("members")
    def _sorted_members(self, members: Set[str]) -> list[str]:
        return sorted(members)


class UserCreated(BaseModel):
    id: str
    record: UserRecord


class GroupCreated(BaseModel):
    id: str
    record: GroupRecord
