"""Core module - canonical models, observability and artifact storage.

Everything here is independent of how statements and invoices are stored
upstream; the matching engine itself lives in /reconciliation/.
"""

__version__ = "1.0.0"
