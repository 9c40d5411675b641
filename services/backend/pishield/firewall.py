"""
PiShield v1 - Firewall Commands
Adds/removes iptables DROP rules for blocked IPs. When the firewall is
disabled (the default outside production hosts) the commands are only logged.
"""

import logging
import subprocess
from typing import List, Optional

from starlette.concurrency import run_in_threadpool

from pishield.config import settings

logger = logging.getLogger(__name__)


class FirewallError(Exception):
    """Raised when an iptables command fails."""


def build_rule_command(action: str, ip: str) -> List[str]:
    """
    Build the iptables argv for a DROP rule.

    Args:
        action: "block" (append) or "unblock" (delete)
        ip: Validated dotted-quad address
    """
    flag = {"block": "-A", "unblock": "-D"}[action]
    return ["sudo", "iptables", flag, "INPUT", "-s", ip, "-j", "DROP"]


def execute_command(args: List[str], timeout: Optional[int] = None) -> str:
    """
    Run a command and return its trimmed stdout.
    Raises FirewallError on non-zero exit, timeout, or missing binary.
    """
    logger.info(f"Executing command: {' '.join(args)}")
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout or settings.firewall_command_timeout_seconds,
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"Command timed out: {' '.join(args)}")
        raise FirewallError("Command timed out") from e
    except OSError as e:
        logger.error(f"Command execution error: {e}")
        raise FirewallError(str(e)) from e

    if result.returncode != 0:
        logger.error(f"Command execution error: {result.stderr.strip()}")
        raise FirewallError(result.stderr.strip() or f"exit status {result.returncode}")

    if result.stderr:
        logger.warning(f"Command stderr: {result.stderr.strip()}")

    logger.info(f"Command stdout: {result.stdout.strip()}")
    return result.stdout.strip()


async def apply_rule(action: str, ip: str) -> None:
    """Apply a block/unblock rule, or log it when the firewall is disabled."""
    if not settings.firewall_enabled:
        logger.info(f"[SIMULATION] {action.capitalize()}ed IP {ip} using iptables")
        return

    await run_in_threadpool(execute_command, build_rule_command(action, ip))
