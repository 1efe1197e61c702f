"""Root conftest: route structlog through stdlib logging so caplog sees simulator events."""

import pytest
import structlog

import curlingsim

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _restore_tuning():
    """set_tuning mutates module globals; put the defaults back after each test."""
    saved = (curlingsim.FRICTION_NORMAL, curlingsim.FRICTION_SWEEPING, curlingsim.STOP_SPEED,
             curlingsim.RESTITUTION, curlingsim.WALL_BOUNCE)
    yield
    curlingsim.set_tuning(*saved)
