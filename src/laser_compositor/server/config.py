"""Bridge configuration.

Typed configuration objects plus a side-effect-free loader that reads the
environment once. The CLI applies its flag overrides on top with
``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional
import json
import logging
import os

from laser_compositor.server.logging_policy import DebugPolicy, load_debug_policy


logger = logging.getLogger(__name__)

ENV_PREFIX = "LASER_COMPOSITOR_"


# ---- Helpers -----------------------------------------------------------------

def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    v = env.get(ENV_PREFIX + name)
    if v is None:
        return default
    try:
        return int(v.strip())
    except ValueError:
        logger.warning("Invalid %s%s=%r; using %s", ENV_PREFIX, name, v, default)
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    v = env.get(ENV_PREFIX + name)
    if v is None:
        return default
    try:
        return float(v.strip())
    except ValueError:
        logger.warning("Invalid %s%s=%r; using %s", ENV_PREFIX, name, v, default)
        return default


def _env_str(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    v = env.get(ENV_PREFIX + name)
    if v is None:
        return default
    v = v.strip()
    return v if v != "" else default


def _cfg_number(value: object, default, cast):
    """Coerce a JSON bundle value with ``cast``; missing, boolean or malformed values keep ``default``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip()
    try:
        return cast(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _load_json_config(env: Mapping[str, str], name: str) -> dict[str, object]:
    raw = env.get(ENV_PREFIX + name)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Failed to parse %s%s; ignoring", ENV_PREFIX, name, exc_info=True)
        return {}
    if isinstance(data, dict):
        return data
    logger.warning("%s%s must be a JSON object; ignoring", ENV_PREFIX, name)
    return {}


# ---- Types -------------------------------------------------------------------

@dataclass(frozen=True)
class CompositorConfig:
    """Reassembly and dispatch parameters."""

    stale_threshold_micros: int = 1_000_000
    num_outputs: int = 5
    dispatch_tick_ms: float = 5.0
    max_points_per_output: int = 8192
    scan_rate: int = 100  # >0: percent of native rate; <0: absolute rate

    @property
    def dispatch_tick_s(self) -> float:
        return self.dispatch_tick_ms / 1000.0

    @property
    def output_addresses(self) -> tuple[str, ...]:
        return tuple(output_address(i) for i in range(self.num_outputs))


@dataclass(frozen=True)
class NetworkConfig:
    """UDP listener for the OSC fragment stream."""

    host: str = "0.0.0.0"
    port: int = 9001
    recv_buffer: int = 20_000
    recv_timeout_s: float = 0.2


@dataclass(frozen=True)
class SinkConfig:
    """Laser sink selection."""

    kind: str = "beyond"  # "beyond" | "null"
    beyond_dll: Optional[str] = None


@dataclass(frozen=True)
class BridgeConfig:
    """Resolved configuration shared by the ingest and dispatch tasks."""

    compositor: CompositorConfig = field(default_factory=CompositorConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    stats_interval_s: float = 0.0
    debug_policy: DebugPolicy = field(default_factory=lambda: load_debug_policy({}))


def output_address(index: int) -> str:
    """Image name registered with the sink for output ``index`` (0-based)."""
    return f"/output{int(index) + 1}"


def zone_indices_for_output(index: int) -> tuple[int, ...]:
    return (int(index) + 1,)


def load_compositor_config(env: Optional[Mapping[str, str]] = None) -> CompositorConfig:
    """Load reassembly/dispatch settings.

    Environment keys consulted:
    - LASER_COMPOSITOR_STALE_THRESHOLD_MICROS, LASER_COMPOSITOR_NUM_OUTPUTS
    - LASER_COMPOSITOR_DISPATCH_TICK_MS, LASER_COMPOSITOR_MAX_POINTS_PER_OUTPUT
    - LASER_COMPOSITOR_SCAN_RATE
    - LASER_COMPOSITOR_CONFIG (JSON object; keys as the dataclass fields)
    """
    env = os.environ if env is None else env
    defaults = CompositorConfig()
    bundle = _load_json_config(env, "CONFIG")

    stale = _env_int(env, "STALE_THRESHOLD_MICROS", defaults.stale_threshold_micros)
    num_outputs = _env_int(env, "NUM_OUTPUTS", defaults.num_outputs)
    tick_ms = _env_float(env, "DISPATCH_TICK_MS", defaults.dispatch_tick_ms)
    max_points = _env_int(env, "MAX_POINTS_PER_OUTPUT", defaults.max_points_per_output)
    scan_rate = _env_int(env, "SCAN_RATE", defaults.scan_rate)

    stale = _cfg_number(bundle.get("stale_threshold_micros"), stale, int)
    num_outputs = _cfg_number(bundle.get("num_outputs"), num_outputs, int)
    tick_ms = _cfg_number(bundle.get("dispatch_tick_ms"), tick_ms, float)
    max_points = _cfg_number(bundle.get("max_points_per_output"), max_points, int)
    scan_rate = _cfg_number(bundle.get("scan_rate"), scan_rate, int)

    if scan_rate == 0:
        logger.warning("scan_rate 0 is not accepted by the sink; using %d", defaults.scan_rate)
        scan_rate = defaults.scan_rate

    return CompositorConfig(
        stale_threshold_micros=max(0, stale),
        num_outputs=max(1, num_outputs),
        dispatch_tick_ms=tick_ms if tick_ms > 0 else defaults.dispatch_tick_ms,
        max_points_per_output=max(1, max_points),
        scan_rate=scan_rate,
    )


def load_bridge_config(env: Optional[Mapping[str, str]] = None) -> BridgeConfig:
    """Build a :class:`BridgeConfig` by reading the environment once.

    Does not mutate the process environment.
    """
    env = os.environ if env is None else env
    compositor = load_compositor_config(env)

    network = NetworkConfig(
        host=_env_str(env, "HOST", "0.0.0.0") or "0.0.0.0",
        port=_env_int(env, "PORT", 9001),
        recv_buffer=max(512, _env_int(env, "RECV_BUFFER", 20_000)),
        recv_timeout_s=max(0.01, _env_float(env, "RECV_TIMEOUT_S", 0.2)),
    )

    kind = (_env_str(env, "SINK", "beyond") or "beyond").lower()
    if kind not in ("beyond", "null"):
        logger.warning("Unknown sink %r; using 'beyond'", kind)
        kind = "beyond"
    sink = SinkConfig(kind=kind, beyond_dll=_env_str(env, "BEYOND_DLL"))

    return BridgeConfig(
        compositor=compositor,
        network=network,
        sink=sink,
        stats_interval_s=max(0.0, _env_float(env, "STATS_INTERVAL_S", 0.0)),
        debug_policy=load_debug_policy(env),
    )


__all__ = [
    "BridgeConfig",
    "CompositorConfig",
    "NetworkConfig",
    "SinkConfig",
    "load_bridge_config",
    "load_compositor_config",
    "output_address",
    "zone_indices_for_output",
]
