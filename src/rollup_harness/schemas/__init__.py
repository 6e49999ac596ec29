from rollup_harness.schemas.rollup import (
    AccountInfoResponse,
    ContractAddressResponse,
    OperationInfoResponse,
    RpcResponse,
    TokenResponse,
)

__all__ = [
    "AccountInfoResponse",
    "ContractAddressResponse",
    "OperationInfoResponse",
    "RpcResponse",
    "TokenResponse",
]
