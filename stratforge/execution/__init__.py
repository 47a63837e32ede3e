from stratforge.execution.ledger import LedgerResult, PortfolioLedger, RejectReason
from stratforge.execution.simulator import ExecutionSimulator, Fill

__all__ = ["ExecutionSimulator", "Fill", "LedgerResult", "PortfolioLedger", "RejectReason"]
