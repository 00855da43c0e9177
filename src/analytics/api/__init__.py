"""HTTP APIs.

    analytics.api.analytics  - read API (/api/v1/analytics)
    analytics.api.ingest     - write API (/api/v1/events)
"""
