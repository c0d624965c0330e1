from typing import Final
from enum import IntEnum, StrEnum

JSONRPC_VERSION: Final = "2.0"

# Tests should not take longer than 30 seconds to fully execute.
TEST_TIMEOUT = 30.0
# Must stay strictly below TEST_TIMEOUT
CONVERGENCE_TIMEOUT = 20.0
RETRY_INTERVAL = 0.2
RPC_TIMEOUT = 30.0
MIRROR_TIMEOUT = 5.0

NOT_IMPLEMENTED: Final = "NOT_IMPLEMENTED"
TESTNET_PLACEHOLDER: Final = "***"


class ErrorCode(IntEnum):
    HEDERA_ERROR      = -32001
    PARSE_ERROR       = -32700
    INVALID_REQUEST   = -32600
    METHOD_NOT_FOUND  = -32601
    INVALID_PARAMS    = -32602
    INTERNAL_ERROR    = -32603


class EntityKind(StrEnum):
    ACCOUNT             = "account"
    ACCOUNT_BALANCE     = "account_balance"
    TOKEN               = "token"
    NFT                 = "nft"
    SCHEDULE            = "schedule"
    TOPIC               = "topic"
    FILE                = "file"
    CONTRACT            = "contract"
    ACCOUNT_NFTS        = "account_nfts"
    ACCOUNT_TOKENS      = "account_tokens"
    CRYPTO_ALLOWANCES   = "crypto_allowances"
    TOKEN_ALLOWANCES    = "token_allowances"
    NFT_ALLOWANCES      = "nft_allowances"
    OUTGOING_AIRDROPS   = "outgoing_airdrops"
    PENDING_AIRDROPS    = "pending_airdrops"
    NODE                = "node"
    TOPIC_MESSAGES      = "topic_messages"
    FILE_CONTENTS       = "file_contents"
    TRANSACTION_RECEIPT = "transaction_receipt"


class Status(StrEnum):
    SUCCESS                = "SUCCESS"
    INVALID_ACCOUNT_ID     = "INVALID_ACCOUNT_ID"
    INVALID_TOKEN_ID       = "INVALID_TOKEN_ID"
    INVALID_NFT_ID         = "INVALID_NFT_ID"
    INVALID_SCHEDULE_ID    = "INVALID_SCHEDULE_ID"
    INVALID_TOPIC_ID       = "INVALID_TOPIC_ID"
    INVALID_FILE_ID        = "INVALID_FILE_ID"
    INVALID_CONTRACT_ID    = "INVALID_CONTRACT_ID"
    ACCOUNT_DELETED        = "ACCOUNT_DELETED"
    INVALID_TRANSACTION_ID = "INVALID_TRANSACTION_ID"
    RECEIPT_NOT_FOUND      = "RECEIPT_NOT_FOUND"


__all__ = [
    "CONVERGENCE_TIMEOUT",
    "JSONRPC_VERSION",
    "MIRROR_TIMEOUT",
    "NOT_IMPLEMENTED",
    "RETRY_INTERVAL",
    "RPC_TIMEOUT",
    "TESTNET_PLACEHOLDER",
    "TEST_TIMEOUT",

    ######
    "EntityKind",
    "ErrorCode",
    "Status",
]
