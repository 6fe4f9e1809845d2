from typing import Annotated, Literal

from pydantic import BaseModel, Field


class OperationBase(BaseModel):
    adapter: str = "unknown"
    transaction_hash: str | None = None
    transaction_chain_id: int | None = None
    gasless: bool = False


class SWAP(OperationBase):
    type: Literal["SWAP"] = "SWAP"
    from_token: str
    to_token: str
    from_amount: str
    to_amount: str
    path_id: str | None = None
    price_impact_pct: float | None = None


class LEND(OperationBase):
    type: Literal["LEND"] = "LEND"
    token_address: str
    pool_address: str
    amount: str


class UNLEND(OperationBase):
    type: Literal["UNLEND"] = "UNLEND"
    token_address: str
    pool_address: str
    # "max" when the protocol's withdraw-everything sentinel was used
    amount: str
    claim_rewards: bool = False


Operation = SWAP | LEND | UNLEND

OperationField = Annotated[Operation, Field(discriminator="type")]
