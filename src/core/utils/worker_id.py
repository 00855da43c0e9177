"""Worker ID generation using coolnames for unique, memorable identifiers."""

from coolname import generate_slug


def generate_worker_id(prefix: str = "") -> str:
    """Generate a human-readable worker ID such as "event-consumer-swift-blue-falcon".

    Consumer workers and the ingest producer use these as Kafka client ids so
    they are easy to tell apart in broker logs and in our own log lines.
    """
    coolname_id = generate_slug(3)

    if prefix:
        return f"{prefix}-{coolname_id}"

    return coolname_id
