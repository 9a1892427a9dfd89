"""Prometheus metrics definitions"""

from prometheus_client import Counter, Histogram, Gauge


# Pipeline metrics
transactions_analyzed = Counter(
    'transactions_analyzed_total',
    'Transactions run through the rule evaluator',
    labelnames=['outcome']  # verified, flagged
)

lifecycle_transitions = Counter(
    'lifecycle_transitions_total',
    'Transaction status transitions written to the store',
    labelnames=['to_status']
)

enrichment_failures = Counter(
    'enrichment_failures_total',
    'Flagged transactions whose enrichment call failed'
)

analyses_in_flight = Gauge(
    'analyses_in_flight',
    'Transactions currently claimed by the analysis orchestrator'
)

# Notifications
notifications_enqueued = Counter(
    'notifications_enqueued_total',
    'Notification records appended to the outbound queue',
    labelnames=['reason']  # user_rejected, test_anomaly
)

notification_enqueue_failures = Counter(
    'notification_enqueue_failures_total',
    'Notification records that could not be enqueued'
)

# LLM usage tracking
llm_tokens_counter = Counter(
    'llm_tokens_used_total',
    'Total LLM tokens consumed',
    labelnames=['model_name']
)

llm_api_latency = Histogram(
    'llm_api_latency_seconds',
    'Latency of LLM API calls',
    labelnames=['model_name'],
    buckets=[0.5, 1, 2, 5, 10, 30]
)

llm_rate_limit_hits = Counter(
    'llm_rate_limit_hits_total',
    'Number of LLM rate limit errors',
    labelnames=['model_name']
)
