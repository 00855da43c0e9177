"""Read-side services for the analytics API."""
