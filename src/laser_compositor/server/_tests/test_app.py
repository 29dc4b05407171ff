from __future__ import annotations

import pytest

from laser_compositor.server import app
from laser_compositor.server.config import BridgeConfig
from laser_compositor.server.sink.interface import RecordingSink


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("LASER_COMPOSITOR_SINK", "LASER_COMPOSITOR_PORT", "LASER_COMPOSITOR_CONFIG", "LASER_COMPOSITOR_DEBUG"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(app.signal, "signal", lambda *_args: None)


def test_flags_override_config() -> None:
    defaults = BridgeConfig()
    args = app.build_parser(defaults).parse_args(
        ["--outputs", "3", "--tick-ms", "2", "--stale-us", "500", "--scan-rate", "-20000", "--sink", "null", "--port", "9100"]
    )

    cfg = app.apply_args(defaults, args)

    assert cfg.compositor.num_outputs == 3
    assert cfg.compositor.dispatch_tick_ms == 2.0
    assert cfg.compositor.stale_threshold_micros == 500
    assert cfg.compositor.scan_rate == -20000
    assert cfg.network.port == 9100
    assert cfg.sink.kind == "null"


def test_defaults_survive_parse() -> None:
    defaults = BridgeConfig()
    cfg = app.apply_args(defaults, app.build_parser(defaults).parse_args([]))
    assert cfg.compositor == defaults.compositor
    assert cfg.network == defaults.network


def test_null_sink_registers_outputs() -> None:
    args = app.build_parser(BridgeConfig()).parse_args(["--sink", "null", "--outputs", "2"])
    sink = app.open_sink(app.apply_args(BridgeConfig(), args))
    assert isinstance(sink, RecordingSink)
    assert sink.registered == ("/output1", "/output2")


def test_main_runs_bridge_and_closes_sink(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    def fake_run_bridge(config, source, sink, *, state, metrics):
        seen["config"] = config
        seen["sink"] = sink
        source.close()
        return 0

    monkeypatch.setattr(app, "run_bridge", fake_run_bridge)

    status = app.main(["--sink", "null", "--host", "127.0.0.1", "--port", "0"])

    assert status == 0
    assert seen["config"].network.host == "127.0.0.1"
    assert seen["sink"].closed is True


def test_main_reports_missing_beyond_library(tmp_path) -> None:
    status = app.main(["--sink", "beyond", "--beyond-dll", str(tmp_path / "BEYONDIO.dll")])
    assert status == 2
