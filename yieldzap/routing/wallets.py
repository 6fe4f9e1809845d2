from __future__ import annotations

from loguru import logger
from pydantic import BaseModel, ConfigDict

from yieldzap.core.clients.protocols import WalletStoreProtocol
from yieldzap.core.errors import NoWalletError
from yieldzap.core.utils.wallets import EoaWallet, SmartWallet


class WalletResolution(BaseModel):
    gasless_available: bool
    smart_wallet_address: str | None = None
    eoa_address: str | None = None


class UserWallets(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    user_id: str = ""
    eoa: EoaWallet | None = None
    smart_wallet: SmartWallet | None = None

    @property
    def gasless_available(self) -> bool:
        return self.smart_wallet is not None

    @property
    def deposit_address(self) -> str:
        """Address the user should fund: the smart wallet when one exists."""
        wallet = self.smart_wallet or self.eoa
        if wallet is None:
            raise NoWalletError(self.user_id)
        return wallet.address

    def resolution(self) -> WalletResolution:
        return WalletResolution(
            gasless_available=self.gasless_available,
            smart_wallet_address=self.smart_wallet.address if self.smart_wallet else None,
            eoa_address=self.eoa.address if self.eoa else None,
        )


class WalletResolver:
    """Read-only view over the wallet store. Never provisions wallets."""

    def __init__(self, store: WalletStoreProtocol):
        self.store = store

    async def wallets_for(self, user_id: str) -> UserWallets:
        eoa = await self.store.get_wallet(user_id)
        smart_wallet = await self.store.get_smart_wallet(user_id)
        if eoa is None and smart_wallet is None:
            raise NoWalletError(user_id)
        logger.bind(user_id=user_id).debug(
            f"Resolved wallets eoa={eoa.address if eoa else None} "
            f"smart={smart_wallet.address if smart_wallet else None}"
        )
        return UserWallets(user_id=user_id, eoa=eoa, smart_wallet=smart_wallet)

    async def resolve(self, user_id: str) -> WalletResolution:
        return (await self.wallets_for(user_id)).resolution()
