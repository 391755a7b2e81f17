import json

from hyp_loadtest.metrics import MetricsRegistry
from hyp_loadtest.report import build_report, console, create_live_table, generate_report, print_summary
from hyp_loadtest.scheduler import LoadProfile, TrafficScheduler


def sample_metrics():
    m = MetricsRegistry()
    m.record_http("post_/order", 200, 120.0)
    m.record_http("post_/order", 500, 80.0, "HTTP 500")
    m.rate("order_success_rate").add(True)
    m.rate("order_success_rate").add(False)
    m.trend("order_duration").add(150)
    m.counter("orders_created").add(1)
    m.stop()
    return m


def test_build_report():
    m = sample_metrics()
    results = m.evaluate({"order_success_rate": ["rate>0.9"], "order_duration": ["p(95)<1000"]})

    report = build_report(m, results, scenario="load")

    assert report["scenario"] == "load"
    assert report["passed"] is False
    assert report["thresholds"][0] == {
        "metric": "order_success_rate", "expression": "rate>0.9", "observed": 0.5, "passed": False,
    }
    assert report["counters"]["orders_created"] == {"count": 1}
    assert report["errors"] == {"HTTP 500": 1}
    assert "timestamp" in report


def test_generate_report_writes_file(tmp_path):
    path = tmp_path / "report.json"
    json_str = generate_report(sample_metrics(), [], output_path=str(path))

    assert json.loads(path.read_text()) == json.loads(json_str)
    assert json.loads(json_str)["passed"] is True


def test_print_summary_and_live_table():
    m = sample_metrics()
    scheduler = TrafficScheduler(LoadProfile.per_actor(iterations=1), lambda s, n: None, metrics=m)

    with console.capture() as capture:
        print_summary(m, m.evaluate({"order_success_rate": ["rate>0.9"]}), title="Load")
        console.print(create_live_table(scheduler))

    output = capture.get()
    assert "Load Summary" in output
    assert "order_success_rate" in output
    assert "FAIL" in output
    assert "Orders Created" in output
