# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Log routing for harlive runs.

Every module logs through stdlib ``logging``; ``configure()`` sends it all
through structlog's ProcessorFormatter to stderr, so stdout stays free for
the JSON results the CLI prints. ``--json-logs`` switches the console
renderer to JSON lines. Within a batch, ``load_context()`` tags each line
with the URL and its batch index, which is how interleaved session,
completion and timeout messages are told apart.

Leaf module with no harlive imports. Safe to call early in startup.
"""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager

import structlog


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Install the stderr handler on the root logger, replacing any others.

    Args:
        json_output: True for JSON lines, False for human-readable output.
        level: Root logger level (default INFO).
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def load_context(url: str, index: int) -> AbstractContextManager:
    """Tag every log line emitted inside the block with the URL being loaded.

    Works for stdlib loggers too: ``merge_contextvars`` runs in the
    formatter's foreign pre-chain.
    """
    return structlog.contextvars.bound_contextvars(url=url, index=index)
