"""Navigation guidance: instructions, history, and the frame cycle."""

from navigation.history import InstructionHistory
from navigation.instructions import InstructionGenerator, NavigationInstruction, Priority

__all__ = ["InstructionGenerator", "InstructionHistory", "NavigationInstruction", "Priority"]
