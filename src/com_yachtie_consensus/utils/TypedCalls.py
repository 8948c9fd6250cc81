"""
Typed call protocol shared by the engine and its callers.

The consensus engine is an arity-one typed call: a validated request model
goes in, a validated result model comes out. The HTTP module and the CLI only
depend on this shape, so a cached wrapper or a remote client can stand in for
the engine.
"""

from typing import Generic, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel

Req = TypeVar("Req", bound=BaseModel, contravariant=True)
Res = TypeVar("Res", bound=BaseModel, covariant=True)


@runtime_checkable
class ArityOneTypedCall(Protocol, Generic[Req, Res]):
    """One validated model in, one validated model out."""

    async def call(self, x: Req) -> Res:
        """Evaluate ``x``; failures are raised, never returned."""
        ...
