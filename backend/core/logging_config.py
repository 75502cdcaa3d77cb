"""Logging setup for the inventory service.

Modules log through ``logging.getLogger(__name__)``. Engine code passes
context such as ``transaction_number`` or ``product_id`` through ``extra``;
the formatter appends those fields as ``key=value`` pairs.
"""

import logging
import sys
from typing import Optional, Union

_CONTEXT_FIELDS = ("transaction_number", "product_id", "batch_id", "actor_id", "reference")

_handler: Optional[logging.Handler] = None


class ContextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        ctx = [
            f"{name}={getattr(record, name)}"
            for name in _CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        ]
        if ctx:
            return f"{base} {' '.join(ctx)}"
        return base


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Attach one stream handler to the root logger. Safe to call twice."""
    global _handler
    root = logging.getLogger()
    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        _handler.setFormatter(ContextFormatter())
        root.addHandler(_handler)
    root.setLevel(level)


def reset_logging() -> None:
    global _handler
    if _handler is not None:
        logging.getLogger().removeHandler(_handler)
        _handler = None
