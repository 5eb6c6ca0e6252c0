import logging
import shlex
from typing import List, Optional

from accountsync.remote.errors import EntityNotFoundError, parse_identifier
from accountsync.schemas.account import GroupRecord, GroupSpec
from accountsync.services.reconciler import Reconciler, Step, render_steps

logger = logging.getLogger(__name__)

GROUPADD = "/usr/sbin/groupadd"
GROUPMOD = "/usr/sbin/groupmod"
GROUPDEL = "/usr/sbin/groupdel"


def build_groupadd(desired: GroupSpec) -> str:
    parts = [GROUPADD]
    if desired.gid > 0:
        parts += ["--gid", str(desired.gid)]
    if desired.system:
        parts.append("--system")
    parts.append(shlex.quote(desired.name))
    return " ".join(parts)


def plan_group_update(observed: GroupRecord, desired: GroupSpec) -> List[Step]:
    steps = []
    if desired.name != observed.name:
        steps.append(Step("name", ["--new-name", shlex.quote(desired.name)], renames_to=desired.name))
    if desired.gid > 0 and desired.gid != observed.gid:
        steps.append(Step("gid", ["--gid", str(desired.gid)]))
    return steps


class GroupReconciler(Reconciler):
    """Converges one group on a remote host, keyed by gid."""

    kind = "group"

    async def create(self, desired: GroupSpec) -> tuple[str, GroupRecord]:
        return await self._bounded(self._create(desired), f"create group {desired.name}")

    async def read(self, ident: str) -> Optional[GroupRecord]:
        gid = parse_identifier(ident)
        return await self._bounded(self.observer.group_by_id(gid), f"read group {gid}")

    async def update(self, ident: str, desired: GroupSpec, observed: Optional[GroupRecord] = None) -> GroupRecord:
        """Applies name and gid changes.

        A gid change moves the group to a new stable identifier; the returned
        record carries it and the caller must persist it in place of ``ident``.
        """
        gid = parse_identifier(ident)
        return await self._bounded(self._update(gid, desired, observed), f"update group {gid}")

    async def delete(self, ident: str) -> None:
        gid = parse_identifier(ident)
        await self._bounded(self._delete(gid), f"delete group {gid}")

    async def _create(self, desired: GroupSpec) -> tuple[str, GroupRecord]:
        await self._mutate(build_groupadd(desired))
        record = await self.observer.group_by_name(desired.name)
        if record is None:
            raise EntityNotFoundError(f"Couldn't get gid: group {desired.name} not found after creation")
        logger.info(f"Group {desired.name} created with gid {record.gid}")
        return str(record.gid), record

    async def _update(self, gid: int, desired: GroupSpec, observed: Optional[GroupRecord]) -> GroupRecord:
        if observed is None:
            observed = await self.observer.group_by_id(gid)
            if observed is None:
                raise EntityNotFoundError(f"Failed to get group name: no group with gid {gid}")

        steps = plan_group_update(observed, desired)
        if not steps:
            logger.debug(f"Group {observed.name} ({gid}) already converged")
            return observed

        logger.info(f"Updating group {observed.name} ({gid}): {', '.join(s.field for s in steps)}")
        for command in render_steps(GROUPMOD, steps, observed.name):
            await self._mutate(command)

        new_gid = desired.gid if desired.gid > 0 else gid
        record = await self.observer.group_by_id(new_gid)
        if record is None:
            raise EntityNotFoundError(f"Group with gid {new_gid} vanished during update")
        return record

    async def _delete(self, gid: int) -> None:
        record = await self.observer.group_by_id(gid)
        if record is None:
            logger.info(f"Group with gid {gid} already absent")
            return
        await self._mutate(f"{GROUPDEL} {shlex.quote(record.name)}")
