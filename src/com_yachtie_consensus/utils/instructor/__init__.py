"""Model Invoker implementations."""

from .InstructorModelInvoker import InstructorModelInvoker, ModelAnswer
from .MockInstructorModelInvoker import MockInstructorModelInvoker, ScriptedReply

__all__ = [
    "InstructorModelInvoker",
    "ModelAnswer",
    "MockInstructorModelInvoker",
    "ScriptedReply",
]
