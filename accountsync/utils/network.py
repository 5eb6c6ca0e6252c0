import asyncio
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)

SSH_BANNER_PREFIX = b"SSH-"


async def check_ssh(hostname: str, port: int, timeout: float = 3.0) -> tuple[bool, float, Optional[str]]:
    """Probes an SSH port without authenticating.

    Connects, reads the server's identification line and hangs up.
    Returns (is_online, latency_ms, banner). A port that accepts the TCP
    connection but does not speak SSH counts as offline.
    """
    start_time = time.perf_counter()
    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(hostname, port), timeout=timeout)
        try:
            line = await asyncio.wait_for(reader.readline(), timeout=timeout)
        finally:
            writer.close()
            await writer.wait_closed()
    except (OSError, asyncio.TimeoutError) as e:
        logger.debug(f"SSH port {hostname}:{port} unreachable: {e}")
        return False, round((time.perf_counter() - start_time) * 1000, 2), None

    latency = round((time.perf_counter() - start_time) * 1000, 2)
    if not line.startswith(SSH_BANNER_PREFIX):
        logger.debug(f"{hostname}:{port} answered without an SSH banner: {line[:40]!r}")
        return False, latency, None
    return True, latency, line.decode("ascii", "replace").strip()
