"""Read-only ledger queries."""

from budgetdrop.queries.executor import (
    BucketProgress,
    LedgerQueries,
    QueryError,
    TransactionSummary,
)

__all__ = ["BucketProgress", "LedgerQueries", "QueryError", "TransactionSummary"]
