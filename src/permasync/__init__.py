"""permasync - folder synchronization for permanent ledger storage."""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
