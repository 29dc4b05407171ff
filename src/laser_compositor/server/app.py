"""Command-line entry point: OSC listener → compositor → laser sink."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import signal
import sys
from typing import Optional, Sequence

from laser_compositor import __version__
from laser_compositor.server.config import BridgeConfig, load_bridge_config
from laser_compositor.server.lifecycle import IngestLifecycleState, run_bridge
from laser_compositor.server.logging_policy import configure_logging
from laser_compositor.server.metrics import Metrics
from laser_compositor.server.sink.interface import RecordingSink, SinkUnavailableError
from laser_compositor.server.udp_source import UdpMessageSource

logger = logging.getLogger(__name__)


def build_parser(defaults: BridgeConfig) -> argparse.ArgumentParser:
    comp = defaults.compositor
    net = defaults.network
    parser = argparse.ArgumentParser(
        prog="laser-compositor",
        description="Composite fragmented OSC point-cloud layers onto laser outputs",
    )
    parser.add_argument("--host", default=net.host)
    parser.add_argument("--port", type=int, default=net.port)
    parser.add_argument("--outputs", type=int, default=comp.num_outputs, help="Number of output channels")
    parser.add_argument("--tick-ms", type=float, default=comp.dispatch_tick_ms, help="Dispatch interval in milliseconds")
    parser.add_argument(
        "--stale-us",
        type=int,
        default=comp.stale_threshold_micros,
        help="Discard unfinished frames this many microseconds behind the layer clock",
    )
    parser.add_argument("--max-points", type=int, default=comp.max_points_per_output)
    parser.add_argument(
        "--scan-rate",
        type=int,
        default=comp.scan_rate,
        help="Positive: percent of projector scan rate; negative: absolute rate",
    )
    parser.add_argument("--sink", choices=("beyond", "null"), default=defaults.sink.kind)
    parser.add_argument("--beyond-dll", default=defaults.sink.beyond_dll, help="Path to BEYONDIO.dll")
    parser.add_argument("--stats-interval", type=float, default=defaults.stats_interval_s, help="Seconds between stats log lines (0 disables)")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG for this package only")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_args(config: BridgeConfig, args: argparse.Namespace) -> BridgeConfig:
    comp = dataclasses.replace(
        config.compositor,
        num_outputs=max(1, int(args.outputs)),
        dispatch_tick_ms=float(args.tick_ms) if args.tick_ms > 0 else config.compositor.dispatch_tick_ms,
        stale_threshold_micros=max(0, int(args.stale_us)),
        max_points_per_output=max(1, int(args.max_points)),
        scan_rate=int(args.scan_rate) or config.compositor.scan_rate,
    )
    net = dataclasses.replace(config.network, host=args.host, port=int(args.port))
    sink = dataclasses.replace(config.sink, kind=args.sink, beyond_dll=args.beyond_dll)
    return dataclasses.replace(
        config,
        compositor=comp,
        network=net,
        sink=sink,
        stats_interval_s=max(0.0, float(args.stats_interval)),
    )


def open_sink(config: BridgeConfig):
    addresses = config.compositor.output_addresses
    if config.sink.kind == "null":
        sink = RecordingSink()
        sink.register_outputs(addresses)
        return sink

    from laser_compositor.server.sink.beyond import BeyondSink

    sink = BeyondSink(path=config.sink.beyond_dll)
    info = sink.describe()
    logger.info(
        "Beyond exe started=%s ready=%s app=%s dll=%s projectors=%s zones=%s",
        info["exe_started"],
        info["exe_ready"],
        info["beyond_version"],
        info["dll_version"],
        info["projector_count"],
        info["zone_count"],
    )
    sink.register_outputs(addresses)
    if not sink.enable_output():
        logger.warning("Beyond refused to enable laser output")
    return sink


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = load_bridge_config()
    args = build_parser(config).parse_args(argv)
    configure_logging(debug=bool(args.debug))
    config = apply_args(config, args)
    logger.info("laser-compositor %s config=%s", __version__, config.compositor)

    try:
        sink = open_sink(config)
    except SinkUnavailableError as exc:
        logger.error("%s", exc)
        return 2

    state = IngestLifecycleState()

    def _stop(signum, _frame) -> None:
        logger.info("signal %d received; stopping", signum)
        state.stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    metrics = Metrics()
    try:
        source = UdpMessageSource(config.network, metrics=metrics)
    except OSError as exc:
        logger.error("cannot bind %s:%d: %s", config.network.host, config.network.port, exc)
        sink.close()
        return 2

    try:
        status = run_bridge(config, source, sink, state=state, metrics=metrics)
    finally:
        try:
            sink.blackout()
        finally:
            sink.close()
    logger.info("stopped (status=%d)", status)
    return status


if __name__ == "__main__":
    sys.exit(main())
