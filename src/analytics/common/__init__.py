"""Kafka transport, health checks and metrics shared by the workers and APIs.

Import directly from submodules:
    from analytics.common.consumer import MessageConsumer
    from analytics.common.producer import EventProducer
"""

# Concrete implementations are not imported here to avoid loading aiokafka
# and aiohttp at package import time.

__all__: list[str] = []
