from yieldzap.core import Intent, TransactionOutcome, YieldzapError
from yieldzap.routing.router import Router

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Intent",
    "Router",
    "TransactionOutcome",
    "YieldzapError",
]
