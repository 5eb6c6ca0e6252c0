import logging
import shlex
from typing import List, Optional, Union

from accountsync.remote.errors import EntityNotFoundError, ReplacementRequiredError, parse_identifier
from accountsync.schemas.account import UserRecord, UserSpec
from accountsync.services.reconciler import Reconciler, Step, render_steps

logger = logging.getLogger(__name__)

USERADD = "/usr/sbin/useradd"
USERMOD = "/usr/sbin/usermod"
USERDEL = "/usr/sbin/userdel"


def build_useradd(desired: UserSpec) -> str:
    """Single creation command encoding every settable attribute."""
    home = desired.home or f"/home/{desired.name}"
    parts = [USERADD, "--home-dir", shlex.quote(home)]
    if desired.create_home:
        parts.append("--create-home")
    if desired.comment:
        parts += ["--comment", shlex.quote(desired.comment)]
    if desired.shell:
        parts += ["--shell", shlex.quote(desired.shell)]
    if desired.uid > 0:
        parts += ["--uid", str(desired.uid)]
    if desired.gid > 0:
        parts += ["--gid", str(desired.gid)]
    if desired.groups:
        parts += ["--groups", shlex.quote(",".join(sorted(desired.groups)))]
    if desired.system:
        parts.append("--system")
    parts.append(shlex.quote(desired.name))
    return " ".join(parts)


def plan_user_update(observed: UserRecord, desired: UserSpec, primary_group: Optional[str] = None) -> List[Step]:
    """Field-level diff, one step per changed field, rename first.

    An unpinned gid and an empty home are not managed and never diff.
    ``primary_group`` is left out of the membership comparison: `id` never
    reports it as a secondary group even when it is listed in ``--groups``.
    """
    steps = []
    if desired.name != observed.name:
        steps.append(Step("name", ["--login", shlex.quote(desired.name)], renames_to=desired.name))
    if desired.gid > 0 and desired.gid != observed.gid:
        steps.append(Step("gid", ["--gid", str(desired.gid)]))
    if desired.home and desired.home != observed.home:
        steps.append(Step("home", ["--move-home", "--home", shlex.quote(desired.home)]))
    if desired.shell != observed.shell:
        steps.append(Step("shell", ["--shell", shlex.quote(desired.shell)]))
    if desired.comment != observed.comment:
        steps.append(Step("comment", ["--comment", shlex.quote(desired.comment)]))
    if set(desired.groups) - {primary_group} != set(observed.groups):
        steps.append(Step("groups", ["--groups", shlex.quote(",".join(sorted(desired.groups)))]))
    return steps


class UserReconciler(Reconciler):
    """Converges one user account on a remote host, keyed by uid."""

    kind = "user"

    async def create(self, desired: UserSpec) -> tuple[str, UserRecord]:
        """Creates the user and returns its uid (as the persisted id) and record."""
        return await self._bounded(self._create(desired), f"create user {desired.name}")

    async def read(self, ident: str, prior: Optional[Union[UserSpec, UserRecord]] = None) -> Optional[UserRecord]:
        """Current record for ``ident``, or None when the user is gone."""
        uid = parse_identifier(ident)
        return await self._bounded(self._read(uid, prior), f"read user {uid}")

    async def update(self, ident: str, desired: UserSpec, observed: Optional[UserRecord] = None) -> UserRecord:
        uid = parse_identifier(ident)
        return await self._bounded(self._update(uid, desired, observed), f"update user {uid}")

    async def delete(self, ident: str) -> None:
        uid = parse_identifier(ident)
        await self._bounded(self._delete(uid), f"delete user {uid}")

    async def _create(self, desired: UserSpec) -> tuple[str, UserRecord]:
        await self._mutate(build_useradd(desired))

        created = await self.observer.user_by_name(desired.name)
        if created is None:
            raise EntityNotFoundError(f"Couldn't get uid: user {desired.name} not found after creation")
        logger.info(f"User {desired.name} created with uid {created.uid}")

        record = await self._read(created.uid, desired)
        if record is None:
            raise EntityNotFoundError(f"User with uid {created.uid} vanished after creation")
        return str(created.uid), record

    async def _read(self, uid: int, prior) -> Optional[UserRecord]:
        record = await self.observer.user_by_id(uid)
        if record is None:
            return None
        groups = await self.observer.group_membership(record.name)
        # create_home leaves no trace in the passwd database
        create_home = prior.create_home if prior is not None else True
        return record.model_copy(update={"groups": groups, "create_home": create_home})

    async def _update(self, uid: int, desired: UserSpec, observed: Optional[UserRecord]) -> UserRecord:
        if observed is None:
            observed = await self._read(uid, desired)
            if observed is None:
                raise EntityNotFoundError(f"Failed to get user name: no user with uid {uid}")

        if desired.uid > 0 and desired.uid != observed.uid:
            raise ReplacementRequiredError(
                f"uid of {observed.name} cannot change in place ({observed.uid} -> {desired.uid}), delete and recreate it"
            )

        primary_group = None
        if set(desired.groups) - set(observed.groups):
            primary_gid = desired.gid if desired.gid > 0 else self.observer.gid_for_user(observed)
            primary = await self.observer.group_by_id(primary_gid)
            primary_group = primary.name if primary is not None else None

        steps = plan_user_update(observed, desired, primary_group)
        if not steps:
            logger.debug(f"User {observed.name} ({uid}) already converged")
            return observed.model_copy(update={"create_home": desired.create_home})

        logger.info(f"Updating user {observed.name} ({uid}): {', '.join(s.field for s in steps)}")
        for command in render_steps(USERMOD, steps, observed.name):
            await self._mutate(command)

        record = await self._read(uid, desired)
        if record is None:
            raise EntityNotFoundError(f"User with uid {uid} vanished during update")
        return record

    async def _delete(self, uid: int) -> None:
        record = await self.observer.user_by_id(uid)
        if record is None:
            logger.info(f"User with uid {uid} already absent")
            return
        await self._mutate(f"{USERDEL} {shlex.quote(record.name)}")
