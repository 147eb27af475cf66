import pytest
from prometheus_client import CollectorRegistry

from nrc.metrics import ErrorKind, MetricsRegistrationError, ReconcileMetrics, ReconcileOutcome


def test_fresh_registry_has_no_samples(registry, metrics):
    assert registry.get_sample_value(
        "newresource_reconcile_total", {"controller": "newresource", "result": "success"}
    ) is None


def test_helpers_write_labelled_series(registry, metrics):
    metrics.record_outcome("newresource", ReconcileOutcome.NOT_FOUND)
    metrics.record_error("newresource", ErrorKind.STATUS_UPDATE_ERROR)
    metrics.mark_ready("default")
    metrics.mark_ready("default")
    metrics.observe_duration("newresource", 0.25)

    assert registry.get_sample_value(
        "newresource_reconcile_total", {"controller": "newresource", "result": "not_found"}
    ) == 1
    assert registry.get_sample_value(
        "newresource_reconcile_errors_total",
        {"controller": "newresource", "error_type": "status_update_error"},
    ) == 1
    assert registry.get_sample_value("newresource_resources_ready", {"namespace": "default"}) == 2
    assert registry.get_sample_value(
        "newresource_reconcile_duration_seconds_count", {"controller": "newresource"}
    ) == 1
    assert registry.get_sample_value(
        "newresource_reconcile_duration_seconds_sum", {"controller": "newresource"}
    ) == pytest.approx(0.25)


def test_duplicate_registration_fails_fast(registry, metrics):
    with pytest.raises(MetricsRegistrationError):
        ReconcileMetrics(registry)


def test_prefix_allows_side_by_side_registration():
    registry = CollectorRegistry()
    ReconcileMetrics(registry, prefix="a")
    m = ReconcileMetrics(registry, prefix="b")
    m.record_outcome("b", ReconcileOutcome.SUCCESS)
    assert registry.get_sample_value("b_reconcile_total", {"controller": "b", "result": "success"}) == 1


def test_render_exposes_text_format(metrics):
    metrics.mark_ready("team-a")
    payload, content_type = metrics.render()
    assert content_type.startswith("text/plain")
    assert b'newresource_resources_ready{namespace="team-a"} 1.0' in payload
