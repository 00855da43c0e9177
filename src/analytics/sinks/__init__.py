"""Storage adapters: durable store, search index and counter store.

Import directly from submodules:
    from analytics.sinks.durable import DurableEventStore
    from analytics.sinks.search import SearchIndex
    from analytics.sinks.counters import CounterStore
"""
