"""
Tests for logging context, metrics helpers and tracing helpers.
"""

import pytest
import structlog
from prometheus_client import REGISTRY, generate_latest

from app.observability.logging import log_context, mask_sensitive
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestLogContext:
    def test_binds_and_unbinds(self):
        with log_context(request_id="req-1", session_id="cs_1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["request_id"] == "req-1"
            assert bound["session_id"] == "cs_1"

        bound = structlog.contextvars.get_contextvars()
        assert "request_id" not in bound
        assert "session_id" not in bound

    def test_unbinds_on_error(self):
        with pytest.raises(RuntimeError):
            with log_context(event_id="evt_1"):
                raise RuntimeError("boom")

        assert "event_id" not in structlog.contextvars.get_contextvars()


class TestMetrics:
    def test_record_reconciliation(self):
        labels = {"source": "webhook", "decision": "grant", "result": "granted"}
        before = sample("lessons_reconciliations_total", **labels)

        metrics.record_reconciliation("webhook", "grant", "granted", 0.01)

        assert sample("lessons_reconciliations_total", **labels) == before + 1

    def test_record_webhook(self):
        labels = {"event_type": "checkout.session.expired", "outcome": "stale"}
        before = sample("lessons_webhook_events_total", **labels)

        metrics.record_webhook("checkout.session.expired", "stale")

        assert sample("lessons_webhook_events_total", **labels) == before + 1

    def test_record_checkout(self):
        before = sample("lessons_checkout_sessions_total", outcome="created")

        metrics.record_checkout("created")

        assert sample("lessons_checkout_sessions_total", outcome="created") == before + 1

    def test_label_names_render_plain(self):
        metrics.record_checkout("created")

        exposition = generate_latest(REGISTRY).decode()

        assert 'lessons_checkout_sessions_total{outcome="created"}' in exposition
        assert "MetricLabels" not in exposition


class TestTraceOperation:
    def test_yields_span_and_propagates_errors(self):
        with trace_operation("payment.reconcile", session_id="cs_1") as span:
            span.set_attribute("outcome", "granted")

        with pytest.raises(ValueError):
            with trace_operation("payment.reconcile"):
                raise ValueError("bad")


class TestMaskSensitive:
    def test_masks_credentials(self):
        event = {"event": "x", "authorization": "Bearer abc", "stripe_signature": "t=1,v1=f"}

        masked = mask_sensitive(None, "info", event)

        assert masked["authorization"] == "***"
        assert masked["stripe_signature"] == "***"
        assert masked["event"] == "x"

    def test_leaves_other_keys(self):
        event = {"event": "payment_granted", "session_id": "cs_1", "token": None}

        assert mask_sensitive(None, "info", dict(event)) == event
