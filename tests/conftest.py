import os
import shlex
from types import SimpleNamespace

# Settings are read at import time, point them at throwaway values first
os.environ.setdefault("ACCOUNTSYNC_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ACCOUNTSYNC_SECRET_KEY", "test-secret-key")

import asyncio
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session as DBSession, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from accountsync.remote.executor import CommandExecutor
from accountsync.remote.transport import Session
from accountsync.services import GroupReconciler, SessionManager, UserReconciler


class FakeLinuxHost:
    """In-memory passwd/group databases driven by the shadow-utils commands.

    Exit codes and output formats follow useradd(8), usermod(8), userdel(8),
    groupadd(8), groupmod(8), groupdel(8), getent(1) and id(1).
    """

    MUTATING = {"useradd", "usermod", "userdel", "groupadd", "groupmod", "groupdel"}

    def __init__(self, sudo_allowed=True):
        self.sudo_allowed = sudo_allowed
        self.commands = []
        self.users = {"root": dict(uid=0, gid=0, comment="root", home="/root", shell="/bin/bash")}
        self.groups = {
            "root": dict(gid=0, members=set()),
            "wheel": dict(gid=10, members=set()),
            "users": dict(gid=100, members=set()),
            "docker": dict(gid=998, members=set()),
        }

    @property
    def mutations(self):
        return [c for c in self.commands if os.path.basename(shlex.split(c.removeprefix("sudo -n "))[0]) in self.MUTATING]

    # -- helpers --

    def _user_by_uid(self, uid):
        return next((n for n, u in self.users.items() if u["uid"] == uid), None)

    def _group_by_gid(self, gid):
        return next((n for n, g in self.groups.items() if g["gid"] == gid), None)

    def _resolve_group(self, ref):
        if ref.isdigit():
            return self._group_by_gid(int(ref))
        return ref if ref in self.groups else None

    def _next_id(self, used, system):
        if system:
            candidate = 999
            while candidate in used:
                candidate -= 1
            return candidate
        regular = [i for i in used if i >= 1000]
        return max(regular) + 1 if regular else 1000

    @staticmethod
    def _options(argv, flags, switches):
        opts, rest, i = {}, [], 0
        while i < len(argv):
            arg = argv[i]
            if arg in switches:
                opts[arg] = True
            elif arg in flags:
                opts[arg] = argv[i + 1]
                i += 1
            else:
                rest.append(arg)
            i += 1
        return opts, rest

    # -- dispatcher --

    def execute(self, command, stdin=""):
        self.commands.append(command)
        argv = shlex.split(command)
        elevated = argv[:2] == ["sudo", "-n"]
        if elevated:
            if not self.sudo_allowed:
                return 1, "", "sudo: a password is required\n"
            argv = argv[2:]
        tool = os.path.basename(argv[0])
        if tool in self.MUTATING and not elevated:
            return 1, "", f"{tool}: Permission denied.\n{tool}: cannot lock /etc/passwd; try again later.\n"
        handler = getattr(self, "_" + tool, None)
        if handler is None:
            return 127, "", f"bash: {tool}: command not found\n"
        return handler(argv[1:])

    def _getent(self, argv):
        database, key = argv
        if database == "passwd":
            name = self._user_by_uid(int(key)) if key.isdigit() else (key if key in self.users else None)
            if name is None:
                return 2, "", ""
            u = self.users[name]
            return 0, f"{name}:x:{u['uid']}:{u['gid']}:{u['comment']}:{u['home']}:{u['shell']}\n", ""
        if database == "group":
            name = self._group_by_gid(int(key)) if key.isdigit() else (key if key in self.groups else None)
            if name is None:
                return 2, "", ""
            g = self.groups[name]
            return 0, f"{name}:x:{g['gid']}:{','.join(sorted(g['members']))}\n", ""
        return 1, "", "Unknown database\n"

    def _id(self, argv):
        name = argv[-1]
        if name not in self.users:
            return 1, "", f"id: '{name}': no such user\n"
        user = self.users[name]
        if "--user" in argv:
            return 0, f"{user['uid']}\n", ""
        primary = self._group_by_gid(user["gid"]) or str(user["gid"])
        secondary = sorted(n for n, g in self.groups.items() if name in g["members"] and n != primary)
        return 0, " ".join([primary] + secondary) + "\n", ""

    def _useradd(self, argv):
        opts, rest = self._options(
            argv,
            {"--home-dir", "--comment", "--shell", "--uid", "--gid", "--groups"},
            {"--create-home", "--system"},
        )
        name = rest[-1]
        if name in self.users:
            return 9, "", f"useradd: user '{name}' already exists\n"
        used_uids = {u["uid"] for u in self.users.values()}
        if "--uid" in opts:
            uid = int(opts["--uid"])
            if uid in used_uids:
                return 4, "", f"useradd: UID {uid} is not unique\n"
        else:
            uid = self._next_id(used_uids, "--system" in opts)
        if "--gid" in opts:
            group = self._resolve_group(opts["--gid"])
            if group is None:
                return 6, "", f"useradd: group '{opts['--gid']}' does not exist\n"
            gid = self.groups[group]["gid"]
        else:
            if name in self.groups:
                return 9, "", f"useradd: group {name} exists - if you want to add this user to that group, use -g.\n"
            used_gids = {g["gid"] for g in self.groups.values()}
            gid = uid if uid not in used_gids else self._next_id(used_gids, "--system" in opts)
            self.groups[name] = dict(gid=gid, members=set())
        extra = [g for g in opts.get("--groups", "").split(",") if g]
        for group in extra:
            if self._resolve_group(group) is None:
                return 6, "", f"useradd: group '{group}' does not exist\n"
        self.users[name] = dict(
            uid=uid,
            gid=gid,
            comment=opts.get("--comment", ""),
            home=opts.get("--home-dir", f"/home/{name}"),
            shell=opts.get("--shell", "/bin/sh"),
        )
        for group in extra:
            self.groups[self._resolve_group(group)]["members"].add(name)
        return 0, "", ""

    def _usermod(self, argv):
        opts, rest = self._options(
            argv,
            {"--login", "--gid", "--home", "--shell", "--comment", "--groups"},
            {"--move-home"},
        )
        name = rest[-1]
        if name not in self.users:
            return 6, "", f"usermod: user '{name}' does not exist\n"
        user = self.users[name]
        if "--gid" in opts:
            group = self._resolve_group(opts["--gid"])
            if group is None:
                return 6, "", f"usermod: group '{opts['--gid']}' does not exist\n"
            user["gid"] = self.groups[group]["gid"]
        if "--home" in opts:
            user["home"] = opts["--home"]
        if "--shell" in opts:
            user["shell"] = opts["--shell"]
        if "--comment" in opts:
            user["comment"] = opts["--comment"]
        if "--groups" in opts:
            wanted = [g for g in opts["--groups"].split(",") if g]
            for group in wanted:
                if self._resolve_group(group) is None:
                    return 6, "", f"usermod: group '{group}' does not exist\n"
            for g in self.groups.values():
                g["members"].discard(name)
            for group in wanted:
                self.groups[self._resolve_group(group)]["members"].add(name)
        if "--login" in opts:
            new = opts["--login"]
            if new in self.users:
                return 9, "", f"usermod: user '{new}' already exists\n"
            self.users[new] = self.users.pop(name)
            for g in self.groups.values():
                if name in g["members"]:
                    g["members"].discard(name)
                    g["members"].add(new)
        return 0, "", ""

    def _userdel(self, argv):
        name = argv[-1]
        if name not in self.users:
            return 6, "", f"userdel: user '{name}' does not exist\n"
        user = self.users.pop(name)
        for g in self.groups.values():
            g["members"].discard(name)
        private = self.groups.get(name)
        if private and private["gid"] == user["gid"] and not private["members"]:
            del self.groups[name]
        return 0, "", ""

    def _groupadd(self, argv):
        opts, rest = self._options(argv, {"--gid"}, {"--system"})
        name = rest[-1]
        if name in self.groups:
            return 9, "", f"groupadd: group '{name}' already exists\n"
        used = {g["gid"] for g in self.groups.values()}
        if "--gid" in opts:
            gid = int(opts["--gid"])
            if gid in used:
                return 4, "", f"groupadd: GID '{gid}' already exists\n"
        else:
            gid = self._next_id(used, "--system" in opts)
        self.groups[name] = dict(gid=gid, members=set())
        return 0, "", ""

    def _groupmod(self, argv):
        opts, rest = self._options(argv, {"--new-name", "--gid"}, set())
        name = rest[-1]
        if name not in self.groups:
            return 6, "", f"groupmod: group '{name}' does not exist\n"
        if "--gid" in opts:
            gid = int(opts["--gid"])
            if self._group_by_gid(gid) not in (None, name):
                return 4, "", f"groupmod: GID '{gid}' already exists\n"
            old = self.groups[name]["gid"]
            self.groups[name]["gid"] = gid
            for u in self.users.values():
                if u["gid"] == old:
                    u["gid"] = gid
        if "--new-name" in opts:
            new = opts["--new-name"]
            if new in self.groups:
                return 9, "", f"groupmod: group '{new}' already exists\n"
            self.groups[new] = self.groups.pop(name)
        return 0, "", ""

    def _groupdel(self, argv):
        name = argv[-1]
        if name not in self.groups:
            return 6, "", f"groupdel: group '{name}' does not exist\n"
        gid = self.groups[name]["gid"]
        owner = next((n for n, u in self.users.items() if u["gid"] == gid), None)
        if owner:
            return 8, "", f"groupdel: cannot remove the primary group of user '{owner}'\n"
        del self.groups[name]
        return 0, "", ""


class FakeConnection:
    """Stands in for asyncssh.SSHClientConnection."""

    def __init__(self, host, delay=0.0):
        self.host = host
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._closed = False

    async def run(self, command, input=None, check=False):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            status, out, err = self.host.execute(command, input or "")
        finally:
            self.in_flight -= 1
        return SimpleNamespace(stdout=out, stderr=err, exit_status=status)

    def is_closed(self):
        return self._closed

    def close(self):
        self._closed = True

    async def wait_closed(self):
        return None


@pytest.fixture
def fake_host():
    return FakeLinuxHost()


@pytest.fixture
def connection(fake_host):
    return FakeConnection(fake_host)


@pytest.fixture
def session(connection):
    return Session(host="fake", port=22, username="admin", use_sudo=True, connection=connection)


@pytest.fixture
def executor(session):
    return CommandExecutor(session, timeout=5)


@pytest.fixture
def users(executor):
    return UserReconciler(executor, operation_timeout=10)


@pytest.fixture
def groups(executor):
    return GroupReconciler(executor, operation_timeout=10)


# -- API fixtures --

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def fake_hosts():
    """Fake machines keyed by hostname, reachable through the fake connector."""
    return {}


@pytest.fixture
def client(db_engine, fake_hosts):
    from accountsync.main import app
    from accountsync.dependencies import get_db

    async def fake_connector(hostname, port, username, credentials, use_sudo=True):
        machine = fake_hosts.setdefault(hostname, FakeLinuxHost())
        return Session(host=hostname, port=port, username=username, use_sudo=use_sudo, connection=FakeConnection(machine))

    def override_get_db():
        with DBSession(db_engine) as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        app.state.session_manager = SessionManager(connector=fake_connector)
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from accountsync.core.security import create_access_token
    return {"Authorization": f"Bearer {create_access_token('orchestrator')}"}
