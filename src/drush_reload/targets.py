"""
Resolve source and destination aliases into Target records
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .drush import DrushRunner
from .errors import AliasResolutionError, CoreLookupError, DrushCommandError

logger = logging.getLogger(__name__)

REMOTE_HOST_MARKER = 'remote-host'
_DIGITS = re.compile(r'\d+')


@dataclass(frozen=True)
class Target:
    """A resolved site alias"""
    alias: str
    is_local: bool
    core_count: int = 1


def default_core_count() -> int:
    """Logical CPU count of this machine (at least 1)"""
    return max(1, os.cpu_count() or 1)


def is_local_alias(metadata: bytes) -> bool:
    """An alias is local unless its metadata names a remote host"""
    text = metadata.decode('utf-8', errors='ignore')
    return REMOTE_HOST_MARKER not in text


def parse_core_count(output: bytes, default: int) -> int:
    """Return the first run of digits in the output, or default

    Empty or unparseable output, and counts below 1, fall back to default.
    """
    text = output.decode('utf-8', errors='ignore') if output else ''
    match = _DIGITS.search(text)
    if not match or int(match.group(0)) < 1:
        logger.warning(f"Could not parse CPU count from {text.strip()!r}, using {default}")
        return default
    return int(match.group(0))


def lookup_core_count(runner: DrushRunner, alias: str, default: int) -> int:
    try:
        output = runner.remote_cpu_count(alias)
    except DrushCommandError as err:
        # Non-fatal: concurrency falls back to the local default.
        logger.warning(str(CoreLookupError(f"CPU count lookup on {alias} failed: {err}")))
        return default
    return parse_core_count(output, default)


def resolve_target(runner: DrushRunner, alias: str, default_cores: Optional[int] = None) -> Target:
    """Examine an alias and size its concurrency

    Raises:
        AliasResolutionError: if drush cannot describe the alias
    """
    default = default_cores or default_core_count()
    try:
        metadata = runner.alias_info(alias)
    except DrushCommandError as err:
        raise AliasResolutionError(f"Could not resolve alias '{alias}': {err}") from err

    local = is_local_alias(metadata)
    cores = default if local else lookup_core_count(runner, alias, default)

    target = Target(alias=alias, is_local=local, core_count=max(1, cores))
    logger.info(f"Alias {alias}: {'local' if target.is_local else 'remote'}, {target.core_count} cores")
    return target


def resolve_targets(runner: DrushRunner, source: str, dest: str,
                    default_cores: Optional[int] = None) -> Tuple[Target, Target]:
    return (
        resolve_target(runner, source, default_cores),
        resolve_target(runner, dest, default_cores),
    )
