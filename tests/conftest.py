"""Pytest configuration and fixtures."""

from collections.abc import Iterator

import pytest
import structlog

from via_gtfs_rt.config import get_settings
from via_gtfs_rt.services.reference.index import ReferenceIndex, get_reference_index

from fixtures.via_fixture import build_index


@pytest.fixture(autouse=True, scope="session")
def configure_structlog() -> None:
    """Route structlog through stdlib logging so stdout stays clean."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture(autouse=True)
def clear_cached_singletons() -> Iterator[None]:
    """Reset cached settings and reference index around each test."""
    get_settings.cache_clear()
    get_reference_index.cache_clear()
    yield
    get_settings.cache_clear()
    get_reference_index.cache_clear()


@pytest.fixture
def index() -> ReferenceIndex:
    """Reference index with VIA-1/40/41 trips and OTT/TRTO/KGON stops."""
    return build_index()
