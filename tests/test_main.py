import asyncio
from pathlib import Path
import sys

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import main
from config import ExporterConfig, InfluxDbConfig

DOCUMENT = b"""<lastData>
<air_temperature><date>2025-11-13T00:00:00+01</date><value>5.2</value></air_temperature>
<air_temperature><date>2025-11-13T00:15:00+01</date><value>5.4</value></air_temperature>
</lastData>"""

CONFIG = ExporterConfig(
    station="t0147",
    mode="push",
    station_url="http://station.test/service.asmx/getLastDataOfMeteoStation",
    influxdb=InfluxDbConfig(url="http://influx.test", token="secret", database="weather"),
)


class FakePointSink:
    name = "influxdb"

    def __init__(self, fail=False):
        self.fail = fail
        self.batches = []
        self.closed = False

    async def publish_points(self, points):
        if self.fail:
            raise ConnectionError("refused")
        self.batches.append(list(points))

    def close(self):
        self.closed = True


def _client(status=200):
    def handler(request):
        return httpx.Response(status, content=DOCUMENT)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _push(monkeypatch, sink, status=200):
    monkeypatch.setattr(main, "build_influxdb_sink", lambda config: sink)

    async def run():
        async with _client(status) as client:
            return await main.run_push(CONFIG, client=client)

    return asyncio.run(run())


def test_push_writes_points_and_exits_zero(monkeypatch):
    sink = FakePointSink()

    assert _push(monkeypatch, sink) == 0
    assert [p.fields["temperature_celsius"] for p in sink.batches[0]] == [5.2, 5.4]
    assert sink.batches[0][0].station == "t0147"
    assert sink.closed


def test_push_exits_one_on_station_error(monkeypatch):
    sink = FakePointSink()

    assert _push(monkeypatch, sink, status=503) == 1
    assert sink.batches == []
    assert sink.closed


def test_push_exits_one_on_write_error(monkeypatch):
    sink = FakePointSink(fail=True)

    assert _push(monkeypatch, sink) == 1
    assert sink.closed


def test_main_reports_config_errors(monkeypatch, capsys):
    def bad_config(argv):
        raise main.ConfigError("missing station value")

    monkeypatch.setattr(main, "load_config", bad_config)

    assert main.main([]) == 2
    assert "missing station value" in capsys.readouterr().err


def test_main_dispatches_push(monkeypatch):
    monkeypatch.setattr(main, "load_config", lambda argv: CONFIG)
    monkeypatch.setattr(main, "configure_logging", lambda env, level: None)

    async def fake_push(config, client=None):
        return 0

    monkeypatch.setattr(main, "run_push", fake_push)

    assert main.main(["--mode", "push"]) == 0
