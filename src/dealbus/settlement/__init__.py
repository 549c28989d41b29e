"""
Settlement collaborator: value transfers executed by the payment agent.
"""

from .ledger import TransferExecutor, TransferRecord, InMemoryLedger

__all__ = ["TransferExecutor", "TransferRecord", "InMemoryLedger"]
