"""Transaction Manager: isolation-aware transactions with classified retry.

Modules
-------
options
    ``IsolationLevel``, ``AccessMode``, ``Deferrable``, ``TransactionOptions``.
backoff
    ``ExponentialBackoff`` (base·2^attempt ±20%) and ``ConstantBackoff``.
classify
    SQLSTATE-first retryable-error classification.
handle
    ``TransactionHandle`` and its ACTIVE / COMMITTED / ROLLED_BACK states.
manager
    ``TransactionManager`` (begin, transaction, run, run_with_retry...).

Tags:
    transactions, retry, ormspine

Doc-Types:
    package-overview, module-index
"""

from ormspine.transactions.backoff import ConstantBackoff, ExponentialBackoff, RetryStrategy
from ormspine.transactions.classify import (
    classify_backend_error,
    is_retryable_error,
    sqlstate_of,
)
from ormspine.transactions.handle import TransactionHandle, TransactionState, execute_statement
from ormspine.transactions.manager import TransactionManager
from ormspine.transactions.options import (
    DEFAULT_TX_OPTIONS,
    AccessMode,
    Deferrable,
    IsolationLevel,
    TransactionOptions,
    default_tx_options,
)

__all__ = [
    "AccessMode",
    "ConstantBackoff",
    "DEFAULT_TX_OPTIONS",
    "Deferrable",
    "ExponentialBackoff",
    "IsolationLevel",
    "RetryStrategy",
    "TransactionHandle",
    "TransactionManager",
    "TransactionOptions",
    "TransactionState",
    "classify_backend_error",
    "default_tx_options",
    "execute_statement",
    "is_retryable_error",
    "sqlstate_of",
]
