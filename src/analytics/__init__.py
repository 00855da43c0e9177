"""
Analytics: event analytics pipeline.

Clients publish events over HTTP; consumers store each event durably, index
it for search and maintain real-time counters for the dashboard.

Subpackages:
    api         - FastAPI read and ingest applications
    common      - Kafka consumer/producer, health server, metrics
    processing  - Idempotency gate, event processor, counters, dead-letter quarantine
    readers     - Dashboard and query services behind the read API
    schemas     - Wire event model and paging envelope
    sinks       - PostgreSQL, Elasticsearch and Redis adapters
    workers     - Consumer worker orchestration

Architecture:
    POST /api/v1/events → user-events / system-events → EventConsumerWorker
        → IdempotencyGate → PostgreSQL → Elasticsearch → Redis counters → processed marker
                                ↓ (decode/processing failure)
                         dead_letter_events  ←  dead-letter-events (DLQ monitor)
"""

__version__ = "0.1.0"
