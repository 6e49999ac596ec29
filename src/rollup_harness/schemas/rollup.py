"""Pydantic schemas for the rollup JSON-RPC API.

These schemas parse the raw JSON-RPC results into validated shapes before the
client converts them into domain values. Balances arrive as decimal strings
and are coerced to int.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from rollup_harness.domain.models import AccountState, ReceiptReport, StageState, Token


class _RpcModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class RpcError(_RpcModel):
    code: int = 0
    message: str = ""
    data: object | None = None


class RpcResponse(_RpcModel):
    """JSON-RPC 2.0 response envelope."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: object | None = None
    error: RpcError | None = None


# ---------------------------------------------------------------------------
# account_info
# ---------------------------------------------------------------------------


class AccountStageResponse(_RpcModel):
    balances: dict[str, int] = Field(default_factory=dict)
    nonce: int = 0
    pub_key_hash: str = Field(default="", alias="pubKeyHash")


class AccountInfoResponse(_RpcModel):
    address: str
    id: int | None = None
    committed: AccountStageResponse = Field(default_factory=AccountStageResponse)
    verified: AccountStageResponse = Field(default_factory=AccountStageResponse)

    def to_domain(self) -> AccountState:
        return AccountState(
            address=self.address,
            account_id=self.id,
            committed=StageState(
                balances=dict(self.committed.balances),
                nonce=self.committed.nonce,
                pub_key_hash=self.committed.pub_key_hash,
            ),
            verified=StageState(
                balances=dict(self.verified.balances),
                nonce=self.verified.nonce,
                pub_key_hash=self.verified.pub_key_hash,
            ),
        )


# ---------------------------------------------------------------------------
# tx_info / ethop_info
# ---------------------------------------------------------------------------


class BlockInfo(_RpcModel):
    block_number: int = Field(alias="blockNumber")
    committed: bool = False
    verified: bool = False


class OperationInfoResponse(_RpcModel):
    """Shared shape of ``tx_info`` and ``ethop_info`` results."""

    executed: bool = False
    success: bool | None = None
    fail_reason: str | None = Field(default=None, alias="failReason")
    block: BlockInfo | None = None

    def to_domain(self) -> ReceiptReport:
        block = self.block
        success = self.success
        if self.executed and success is None:
            # priority operations carry no success flag; executed means applied
            success = True
        return ReceiptReport(
            executed=self.executed,
            success=success if self.executed else None,
            fail_reason=self.fail_reason,
            committed=bool(block and block.committed),
            verified=bool(block and block.verified),
        )


# ---------------------------------------------------------------------------
# tokens / contract_address
# ---------------------------------------------------------------------------


class TokenResponse(_RpcModel):
    id: int
    address: str
    symbol: str
    decimals: int = 18

    def to_domain(self) -> Token:
        return Token(id=self.id, symbol=self.symbol, address=self.address, decimals=self.decimals)


class ContractAddressResponse(_RpcModel):
    main_contract: str = Field(alias="mainContract")
