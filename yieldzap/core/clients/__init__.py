from yieldzap.core.clients.ApiClient import ApiClient, JsonRpcClient
from yieldzap.core.clients.BundlerClient import BundlerClient
from yieldzap.core.clients.LedgerClient import (
    LedgerClient,
    PositionRecord,
    TransactionRecord,
)
from yieldzap.core.clients.OdosClient import ODOS_CLIENT, OdosClient
from yieldzap.core.clients.PaymasterClient import PaymasterClient
from yieldzap.core.clients.protocols import (
    DepositMonitorProtocol,
    LedgerClientProtocol,
    WalletStoreProtocol,
)

__all__ = [
    "ApiClient",
    "JsonRpcClient",
    "BundlerClient",
    "PaymasterClient",
    "LedgerClient",
    "PositionRecord",
    "TransactionRecord",
    "ODOS_CLIENT",
    "OdosClient",
    "DepositMonitorProtocol",
    "LedgerClientProtocol",
    "WalletStoreProtocol",
]
