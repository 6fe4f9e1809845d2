from yieldzap.core.adapters.BaseAdapter import BaseAdapter
from yieldzap.core.errors import YieldzapError
from yieldzap.core.models import Intent, TransactionOutcome

__all__ = [
    "BaseAdapter",
    "Intent",
    "TransactionOutcome",
    "YieldzapError",
]
