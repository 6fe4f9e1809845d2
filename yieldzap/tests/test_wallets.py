from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from yieldzap.core.errors import NoWalletError
from yieldzap.core.utils.wallets import EoaWallet, SmartWallet
from yieldzap.routing.wallets import UserWallets, WalletResolver

EOA = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
SMART = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


def _store(eoa: EoaWallet | None, smart: SmartWallet | None) -> AsyncMock:
    store = AsyncMock()
    store.get_wallet = AsyncMock(return_value=eoa)
    store.get_smart_wallet = AsyncMock(return_value=smart)
    return store


@pytest.fixture
def eoa() -> EoaWallet:
    return EoaWallet(address=EOA.lower(), signing_callback=AsyncMock())


@pytest.fixture
def smart() -> SmartWallet:
    return SmartWallet(address=SMART, owner_address=EOA, sign_hash=AsyncMock())


@pytest.mark.asyncio
async def test_both_wallets(eoa: EoaWallet, smart: SmartWallet) -> None:
    resolution = await WalletResolver(_store(eoa, smart)).resolve("u1")

    assert resolution.gasless_available is True
    assert resolution.smart_wallet_address == SMART
    assert resolution.eoa_address == EOA


@pytest.mark.asyncio
async def test_eoa_only(eoa: EoaWallet) -> None:
    wallets = await WalletResolver(_store(eoa, None)).wallets_for("u1")

    assert wallets.gasless_available is False
    assert wallets.deposit_address == EOA
    assert wallets.resolution().smart_wallet_address is None


@pytest.mark.asyncio
async def test_no_wallet_raises() -> None:
    with pytest.raises(NoWalletError) as exc_info:
        await WalletResolver(_store(None, None)).wallets_for("u1")
    assert exc_info.value.user_id == "u1"


def test_deposit_address_prefers_smart_wallet(
    eoa: EoaWallet, smart: SmartWallet
) -> None:
    assert UserWallets(eoa=eoa, smart_wallet=smart).deposit_address == SMART


def test_deposit_address_without_wallets_raises() -> None:
    with pytest.raises(NoWalletError) as exc_info:
        _ = UserWallets(user_id="u2").deposit_address
    assert exc_info.value.user_id == "u2"
