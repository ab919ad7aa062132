"""FlowShare: ad hoc file exchange between devices sharing a room code."""

__version__ = "0.1.0"
