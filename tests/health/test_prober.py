import asyncio

import pytest
import requests

import avalops.health.prober as prober
from avalops.errors import DecodeError
from avalops.health.prober import HealthReport, health_url, probe, probe_all

SAMPLE = (
    '{"checks":{"C":{"message":{"consensus":{"longestRunningBlock":"0s","outstandingBlocks":0},"vm":null},'
    '"timestamp":"2022-02-16T08:15:01.766696642Z","duration":5861},'
    '"P":{"message":{"consensus":{"longestRunningBlock":"0s","outstandingBlocks":0},"vm":{"percentConnected":1}},'
    '"timestamp":"2022-02-16T08:15:01.766695342Z","duration":19790},'
    '"bootstrapped":{"message":[],"timestamp":"2022-02-16T08:15:01.766704522Z","duration":8120}},'
    '"healthy":true}'
)

UNHEALTHY = (
    '{"checks":{"network":{"error":"not connected","timestamp":"2022-02-16T08:15:01Z",'
    '"duration":10,"contiguousFailures":3,"timeOfFirstFailure":"2022-02-16T08:14:01.123456789Z"}},'
    '"healthy":false}'
)

class FakeResponse:
    def __init__(self, body, status_code=200):
        self.content = body.encode()
        self.status_code = status_code


def test_parse_healthy_report():
    report = HealthReport.parse(SAMPLE)
    assert report.healthy is True
    assert set(report.checks) == {"C", "P", "bootstrapped"}
    c = report.checks["C"]
    assert c.duration == 5861
    assert c.timestamp.year == 2022 and c.timestamp.microsecond == 766696
    assert c.error is None
    assert report.failing() == []


def test_parse_unhealthy_report():
    report = HealthReport.parse(UNHEALTHY)
    net = report.checks["network"]
    assert report.healthy is False
    assert net.error == "not connected"
    assert net.contiguous_failures == 3
    assert net.time_of_first_failure.minute == 14
    assert report.failing() == ["network"]


@pytest.mark.parametrize("body", ["", "not json", '{"healthy": "maybe"}', '{"checks": {"x": {}}}'])
def test_parse_malformed(body):
    with pytest.raises(DecodeError) as ei:
        HealthReport.parse(body)
    assert ei.value.stage == "json"


def test_health_url():
    assert health_url("http://1.2.3.4:9650") == "http://1.2.3.4:9650/ext/health"
    assert health_url("http://1.2.3.4:9650/", liveness=True) == "http://1.2.3.4:9650/ext/health/liveness"


def test_probe_uses_requests(monkeypatch):
    calls = []

    def fake_get(url, timeout, verify):
        calls.append((url, timeout, verify))
        return FakeResponse(UNHEALTHY, status_code=503)

    monkeypatch.setattr(prober.requests, "get", fake_get)

    report = asyncio.run(probe("http://1.2.3.4:9650", timeout=2.0))
    assert report.healthy is False
    assert calls == [("http://1.2.3.4:9650/ext/health", 2.0, True)]

    asyncio.run(probe("https://nlb.example.com:443", liveness=True))
    assert calls[-1][0] == "https://nlb.example.com:443/ext/health/liveness"
    assert calls[-1][2] is False


def test_probe_propagates_transport_errors(monkeypatch):
    def fake_get(url, timeout, verify):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(prober.requests, "get", fake_get)
    with pytest.raises(requests.ConnectionError):
        asyncio.run(probe("http://1.2.3.4:9650"))


def test_probe_all_collects_failures(monkeypatch):
    def fake_get(url, timeout, verify):
        if "10.0.0.2" in url:
            raise requests.Timeout("slow")
        return FakeResponse(SAMPLE)

    monkeypatch.setattr(prober.requests, "get", fake_get)
    results = asyncio.run(probe_all(["http://10.0.0.1:9650", "http://10.0.0.2:9650"]))
    assert results["http://10.0.0.1:9650"].healthy is True
    assert isinstance(results["http://10.0.0.2:9650"], requests.Timeout)
