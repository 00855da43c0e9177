"""
pytest configuration.

Adds src directory to Python path for imports.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from config.config import reset_config  # noqa: E402
from core.logging.context import clear_log_context  # noqa: E402
from core.logging.message_context import clear_message_context  # noqa: E402
from core.resilience import reset_circuit_breakers  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Breaker registry, config singleton and log context are process-wide."""
    yield
    reset_circuit_breakers()
    reset_config()
    clear_log_context()
    clear_message_context()
