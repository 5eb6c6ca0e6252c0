"""Read-only introspection of the account databases on a remote host.

There is no structured API on the remote side, so records come from the
colon-delimited lines printed by ``getent`` and the space-delimited list
printed by ``id``. Parsing is strictly positional: a line with the wrong
field count or a non-numeric id is a ParseError, never a silent default.
"""
import logging
import shlex
from typing import Optional, Set

from accountsync.core.config import get_settings
from accountsync.remote.errors import ExecutionError, ExecutionKind, ParseError
from accountsync.schemas.account import GroupRecord, UserRecord

settings = get_settings()
logger = logging.getLogger(__name__)

# getent(1): "One or more supplied key could not be found in the database."
GETENT_KEY_NOT_FOUND = 2

PASSWD_FIELDS = 7  # name:password:uid:gid:gecos:home:shell
GROUP_FIELDS = 4  # name:password:gid:members


def _to_int(value: str, command: str, line: str, field_name: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ParseError(command, line, f"{field_name} {value!r} is not numeric") from None


def parse_passwd_line(line: str, command: str, system_id_max: int) -> UserRecord:
    fields = line.split(":")
    if len(fields) != PASSWD_FIELDS:
        raise ParseError(command, line, f"expected {PASSWD_FIELDS} fields, got {len(fields)}")
    uid = _to_int(fields[2], command, line, "uid")
    gid = _to_int(fields[3], command, line, "gid")
    return UserRecord(
        name=fields[0],
        uid=uid,
        gid=gid,
        comment=fields[4],
        home=fields[5],
        shell=fields[6],
        system=uid < system_id_max,
    )


def parse_group_line(line: str, command: str, system_id_max: int) -> GroupRecord:
    fields = line.split(":")
    if len(fields) != GROUP_FIELDS:
        raise ParseError(command, line, f"expected {GROUP_FIELDS} fields, got {len(fields)}")
    gid = _to_int(fields[2], command, line, "gid")
    members = {m for m in fields[3].split(",") if m}
    return GroupRecord(name=fields[0], gid=gid, system=gid < system_id_max, members=members)


class StateObserver:
    """Resolves user and group records through a command executor."""

    def __init__(self, executor, system_id_max: Optional[int] = None):
        self.executor = executor
        self.system_id_max = system_id_max if system_id_max is not None else settings.SYSTEM_ID_MAX

    async def _getent(self, database: str, key) -> tuple[str, Optional[str]]:
        command = f"getent {database} {shlex.quote(str(key))}"
        try:
            result = await self.executor.run(command)
        except ExecutionError as exc:
            if exc.kind is ExecutionKind.FAILED and exc.exit_status == GETENT_KEY_NOT_FOUND:
                return command, None
            raise
        lines = [line for line in result.stdout.strip().splitlines() if line.strip()]
        if not lines:
            return command, None
        return command, lines[0].strip()

    async def user_by_id(self, uid: int) -> Optional[UserRecord]:
        command, line = await self._getent("passwd", uid)
        if line is None:
            logger.debug(f"No user with uid {uid}")
            return None
        return parse_passwd_line(line, command, self.system_id_max)

    async def user_by_name(self, name: str) -> Optional[UserRecord]:
        command, line = await self._getent("passwd", name)
        if line is None:
            logger.debug(f"No user named {name}")
            return None
        return parse_passwd_line(line, command, self.system_id_max)

    async def group_by_id(self, gid: int) -> Optional[GroupRecord]:
        command, line = await self._getent("group", gid)
        if line is None:
            return None
        return parse_group_line(line, command, self.system_id_max)

    async def group_by_name(self, name: str) -> Optional[GroupRecord]:
        command, line = await self._getent("group", name)
        if line is None:
            return None
        return parse_group_line(line, command, self.system_id_max)

    async def group_membership(self, name: str) -> Set[str]:
        """Secondary group names of a user.

        ``id`` lists the primary group first; it is not part of the
        membership that ``usermod --groups`` manages.
        """
        command = f"id --name --groups {shlex.quote(name)}"
        result = await self.executor.run(command)
        names = result.stdout.split()
        if not names:
            raise ParseError(command, result.stdout, "empty group list")
        return set(names[1:])

    @staticmethod
    def gid_for_user(record: UserRecord) -> int:
        return record.gid
