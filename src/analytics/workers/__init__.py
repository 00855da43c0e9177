"""Worker processes.

    from analytics.workers.event_consumer import EventConsumerWorker
"""
