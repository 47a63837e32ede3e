from stratforge.strategies.risk.manager import RiskDecision, RiskGate

__all__ = ["RiskDecision", "RiskGate"]
