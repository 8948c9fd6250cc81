"""
Utility modules for the consensus engine.
"""

from .TypedCalls import ArityOneTypedCall

__all__ = [
    "ArityOneTypedCall",
]
