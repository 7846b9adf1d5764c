"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Registration metrics
registration_attempts = Counter(
    'webinar_registration_attempts_total',
    'Total registration attempts',
    ['outcome']  # pending_payment, confirmed, conflict, full, not_found, inactive, error
)

confirmations = Counter(
    'webinar_confirmations_total',
    'Confirmation routine runs',
    ['trigger', 'result']  # trigger: free, webhook; result: success, error
)

cancellations = Counter(
    'webinar_cancellations_total',
    'Registration cancellations',
)

invoices_issued = Counter(
    'webinar_invoices_issued_total',
    'Invoice numbers allocated and rendered',
)

# Webhook metrics
webhook_deliveries = Counter(
    'payment_webhook_deliveries_total',
    'Inbound payment webhook deliveries',
    ['outcome']  # rejected, ignored_unknown_payment, already_processed, completed, ...
)

# Reminder metrics
reminders = Counter(
    'webinar_reminders_total',
    'Reminder notifications',
    ['result']  # sent, failed
)

reminder_sweep_duration = Histogram(
    'webinar_reminder_sweep_seconds',
    'Reminder sweep duration',
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0]
)

# External collaborators
upstream_latency = Histogram(
    'upstream_call_latency_seconds',
    'Latency of calls to external providers',
    ['provider', 'operation'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

upstream_errors = Counter(
    'upstream_errors_total',
    'Failed calls to external providers',
    ['provider', 'operation']
)

best_effort_failures = Counter(
    'best_effort_failures_total',
    'Best-effort operations that failed and were logged',
    ['operation']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_registration_attempt(outcome: str):
    registration_attempts.labels(outcome=outcome).inc()


def record_confirmation(trigger: str, success: bool):
    result = "success" if success else "error"
    confirmations.labels(trigger=trigger, result=result).inc()


def record_webhook(outcome: str):
    webhook_deliveries.labels(outcome=outcome).inc()


def record_reminder(sent: bool):
    result = "sent" if sent else "failed"
    reminders.labels(result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
