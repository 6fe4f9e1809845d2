from __future__ import annotations

from collections.abc import Awaitable, Callable

from eth_account import Account
from eth_utils import to_checksum_address
from pydantic import BaseModel, ConfigDict, field_validator

from yieldzap.core.utils.transaction import make_sign_callback

TxSigner = Callable[[dict], Awaitable[bytes]]
HashSigner = Callable[[bytes], Awaitable[bytes]]


class EoaWallet(BaseModel):
    """Private-key wallet that pays its own gas in ETH."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    address: str
    signing_callback: TxSigner

    @field_validator("address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return to_checksum_address(value)


class SmartWallet(BaseModel):
    """Coinbase Smart Wallet handle used for sponsored UserOperations."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    address: str
    owner_address: str
    sign_hash: HashSigner
    owner_index: int = 0
    is_deployed: bool = False
    init_code: str = "0x"

    @field_validator("address", "owner_address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return to_checksum_address(value)

    def without_init_code(self) -> SmartWallet:
        return self.model_copy(update={"init_code": "0x", "is_deployed": True})


def make_eoa_wallet(private_key: str) -> EoaWallet:
    acct = Account.from_key(private_key)
    return EoaWallet(address=acct.address, signing_callback=make_sign_callback(private_key))


def make_hash_signer(private_key: str) -> HashSigner:
    acct = Account.from_key(private_key)

    async def sign_hash(message_hash: bytes) -> bytes:
        # Smart wallet owners sign the raw userOpHash (no EIP-191 prefix).
        return bytes(acct.unsafe_sign_hash(message_hash).signature)

    return sign_hash


def make_smart_wallet(
    owner_private_key: str,
    address: str,
    *,
    is_deployed: bool = False,
    init_code: str = "0x",
    owner_index: int = 0,
) -> SmartWallet:
    owner = Account.from_key(owner_private_key)
    return SmartWallet(
        address=address,
        owner_address=owner.address,
        sign_hash=make_hash_signer(owner_private_key),
        owner_index=owner_index,
        is_deployed=is_deployed,
        init_code=init_code,
    )
