"""SSH credential chain.

Strategies are evaluated in order and each reports a tagged outcome.  A static
password is used on its own; otherwise every key that the key file and agent
strategies discover is offered in one public key authentication attempt.

Only keys the chain itself loaded are offered. asyncssh falls back to the
``~/.ssh/id_*`` files when ``client_keys`` is empty and disables the agent
when it is None, so agent keys are fetched here and passed as ordinary
client keys with asyncssh's own agent lookup switched off.
"""
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import asyncssh

from accountsync.core.config import get_settings
from accountsync.remote.errors import AuthError

settings = get_settings()
logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    TRIED = "tried"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"


@dataclass
class StrategyResult:
    strategy: str
    outcome: Outcome
    detail: str = ""


@dataclass
class CredentialSource:
    """What the host configuration offers for authentication.

    ``key_path`` is the explicitly configured key. When it is None the
    default key path is probed and its absence is not an error.
    """
    password: Optional[str] = None
    key_path: Optional[Path] = None
    passphrase: Optional[str] = None
    default_key_path: Path = field(default_factory=lambda: settings.DEFAULT_PRIVATE_KEY)
    agent_path: Optional[str] = None  # None reads SSH_AUTH_SOCK


@dataclass
class CredentialPlan:
    results: List[StrategyResult] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    agent: Optional[asyncssh.SSHAgentClient] = None

    @property
    def succeeded(self) -> bool:
        return any(r.outcome is Outcome.SUCCEEDED for r in self.results)

    def summary(self) -> str:
        return ", ".join(f"{r.strategy}={r.outcome.value}" for r in self.results)

    async def close(self) -> None:
        """Releases the agent connection once authentication is over."""
        if self.agent is not None:
            self.agent.close()
            await self.agent.wait_closed()
            self.agent = None


class CredentialStrategy:
    name = "base"

    async def evaluate(self, source: CredentialSource, plan: CredentialPlan) -> StrategyResult:
        raise NotImplementedError


class PasswordStrategy(CredentialStrategy):
    name = "password"

    async def evaluate(self, source, plan):
        if not source.password:
            return StrategyResult(self.name, Outcome.SKIPPED, "no password configured")
        plan.options["password"] = source.password
        return StrategyResult(self.name, Outcome.SUCCEEDED)


class PrivateKeyStrategy(CredentialStrategy):
    name = "private_key"

    async def evaluate(self, source, plan):
        explicit = source.key_path is not None
        path = Path(source.key_path if explicit else source.default_key_path).expanduser()
        try:
            key = asyncssh.read_private_key(str(path), source.passphrase)
        except FileNotFoundError:
            if not explicit:
                return StrategyResult(self.name, Outcome.SKIPPED, f"default key {path} not present")
            raise AuthError(f"Private key {path} does not exist") from None
        except (OSError, asyncssh.KeyImportError) as exc:
            raise AuthError(f"Cannot load private key {path}: {exc}") from exc
        plan.options.setdefault("client_keys", []).append(key)
        return StrategyResult(self.name, Outcome.SUCCEEDED, str(path))


class AgentStrategy(CredentialStrategy):
    name = "agent"

    async def evaluate(self, source, plan):
        sock = source.agent_path or os.environ.get("SSH_AUTH_SOCK")
        if not sock:
            return StrategyResult(self.name, Outcome.SKIPPED, "SSH_AUTH_SOCK not set")
        if not os.path.exists(sock):
            return StrategyResult(self.name, Outcome.TRIED, f"agent socket {sock} missing")

        try:
            agent = await asyncssh.connect_agent(sock)
        except (OSError, asyncssh.Error) as exc:
            return StrategyResult(self.name, Outcome.TRIED, f"agent at {sock} unreachable: {exc}")
        try:
            keys = await agent.get_keys()
        except (OSError, ValueError, asyncssh.Error) as exc:
            keys = []
            logger.debug(f"Listing agent keys at {sock} failed: {exc}")

        if not keys:
            agent.close()
            await agent.wait_closed()
            return StrategyResult(self.name, Outcome.TRIED, f"agent at {sock} holds no keys")

        plan.agent = agent
        plan.options.setdefault("client_keys", []).extend(keys)
        return StrategyResult(self.name, Outcome.SUCCEEDED, f"{len(keys)} key(s) from {sock}")


DEFAULT_STRATEGIES: List[CredentialStrategy] = [
    PasswordStrategy(),
    PrivateKeyStrategy(),
    AgentStrategy(),
]


async def resolve_credentials(
    source: CredentialSource,
    strategies: Optional[List[CredentialStrategy]] = None,
) -> CredentialPlan:
    """Evaluates the strategy chain and returns asyncssh connect options.

    The caller must ``close()`` the plan after connecting; an agent that
    supplied keys stays open until then to sign the authentication request.

    Raises:
        AuthError: a configured key cannot be loaded, or nothing usable was found.
    """
    strategies = strategies if strategies is not None else DEFAULT_STRATEGIES
    plan = CredentialPlan()
    password_used = False

    try:
        for strategy in strategies:
            if password_used:
                plan.results.append(StrategyResult(strategy.name, Outcome.SKIPPED, "password supplied"))
                continue
            result = await strategy.evaluate(source, plan)
            plan.results.append(result)
            if isinstance(strategy, PasswordStrategy) and result.outcome is Outcome.SUCCEEDED:
                password_used = True

        if not plan.succeeded:
            raise AuthError(f"No usable SSH credentials ({plan.summary()})")
    except AuthError:
        await plan.close()
        raise

    if password_used:
        # Key based methods are not offered alongside a static password
        plan.options["client_keys"] = None
    # asyncssh must not open its own agent connection or read default keys
    plan.options["agent_path"] = None

    logger.debug(f"Credential chain resolved: {plan.summary()}")
    return plan
