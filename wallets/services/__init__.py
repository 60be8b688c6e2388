from wallets.services.ledger import LedgerService, TransactionPage

__all__ = ["LedgerService", "TransactionPage"]
