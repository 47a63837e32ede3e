from stratforge.strategies.sizing.base import PositionSizer, Sizer

__all__ = ["PositionSizer", "Sizer"]
