"""Operator entry point: ``kopf run -m uptimerobot_operator.main``."""

from __future__ import annotations

import os
from typing import Any

import kopf

from . import handlers  # noqa: F401
from . import health
from . import logging as structured_logging
from .tracing import initialize_tracing


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator."""
    # Set up structured JSON logging
    structured_logging.setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))
    initialize_tracing()

    # Use AnnotationsProgressStorage to avoid conflicts with status updates
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()

    settings.posting.level = 0
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = 4

    # Start metrics HTTP server with health check endpoints
    health.start_server(int(os.getenv("METRICS_PORT", "8080")))
    health.set_ready(True)


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    health.set_ready(False)
