from __future__ import annotations

"""Debug/logging policy plumbing for the compositor bridge."""

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoggingToggles:
    log_frames: bool = False
    log_reaps: bool = False
    log_sends: bool = False
    log_ticks: bool = False


@dataclass(frozen=True)
class DebugPolicy:
    enabled: bool
    logging: LoggingToggles


_LOG_FLAG_MAP: dict[str, Iterable[str]] = {
    "frames": ("log_frames",),
    "reaps": ("log_reaps",),
    "sends": ("log_sends",),
    "ticks": ("log_ticks",),
    "all": ("log_frames", "log_reaps", "log_sends", "log_ticks"),
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _coerce_bool(value: object, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        val = value.strip().lower()
        if val in _TRUTHY:
            return True
        if val in _FALSY:
            return False
    return default


def _split_flags(raw: object) -> set[str]:
    result: set[str] = set()
    items: Iterable[object]
    if raw is None:
        return result
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, Iterable):
        items = raw
    else:
        return result
    for item in items:
        token = str(item).strip().lower()
        if token:
            result.add(token)
    return result


def _load_debug_config(env: Mapping[str, str]) -> tuple[bool, dict[str, object]]:
    raw = env.get("LASER_COMPOSITOR_DEBUG")
    if raw is None:
        return False, {}
    raw_str = raw.strip()
    if raw_str.lower() in _FALSY:
        return False, {}
    if raw_str.lower() in _TRUTHY:
        return True, {}
    try:
        parsed = json.loads(raw_str)
    except ValueError:
        logger.debug("LASER_COMPOSITOR_DEBUG is not JSON; treating as flag list")
        return True, {"flags": raw_str}
    if isinstance(parsed, dict):
        return _coerce_bool(parsed.get("enabled", True), True), parsed
    if isinstance(parsed, (list, tuple)):
        return True, {"flags": parsed}
    return True, {"flags": raw_str}


def load_debug_policy(env: Optional[Mapping[str, str]] = None) -> DebugPolicy:
    """Resolve logging toggles from ``LASER_COMPOSITOR_DEBUG[_FLAGS]``.

    Toggles only apply while the policy is enabled.
    """
    env = os.environ if env is None else env
    enabled, cfg = _load_debug_config(env)

    flags = _split_flags(cfg.get("flags"))
    flags |= _split_flags(env.get("LASER_COMPOSITOR_DEBUG_FLAGS"))

    log_kwargs = {name: False for name in LoggingToggles.__annotations__.keys()}
    if enabled:
        for flag, attrs in _LOG_FLAG_MAP.items():
            if flag in flags:
                for attr in attrs:
                    log_kwargs[attr] = True
        unknown = flags - set(_LOG_FLAG_MAP)
        if unknown:
            logger.warning("Ignoring unknown debug flags: %s", ", ".join(sorted(unknown)))

    return DebugPolicy(enabled=enabled, logging=LoggingToggles(**log_kwargs))


def configure_logging(*, debug: bool = False, level: int = logging.INFO) -> None:
    """Install the process-wide handler; ``debug`` raises only this package to DEBUG."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
    )
    if debug:
        logging.getLogger("laser_compositor").setLevel(logging.DEBUG)


__all__ = [
    "DebugPolicy",
    "LoggingToggles",
    "configure_logging",
    "load_debug_policy",
]
