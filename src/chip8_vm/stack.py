"""Bounded call stack of subroutine return addresses."""

from typing import List

from .errors import StackOverflow, StackUnderflow


STACK_DEPTH = 16


class CallStack:
    """Return addresses pushed by 2nnn and popped by 00EE.

    Attributes:
        depth: Maximum number of frames
    """

    def __init__(self, depth: int = STACK_DEPTH):
        if depth < 1:
            raise ValueError("stack depth must be at least 1")
        self.depth = depth
        self._frames: List[int] = []

    def push(self, address: int) -> None:
        """Push a return address.

        Raises:
            StackOverflow: If the stack already holds ``depth`` frames
        """
        if len(self._frames) >= self.depth:
            raise StackOverflow(self.depth)
        self._frames.append(address)

    def pop(self) -> int:
        """Pop the latest return address.

        Raises:
            StackUnderflow: If the stack is empty
        """
        if not self._frames:
            raise StackUnderflow()
        return self._frames.pop()

    def peek(self) -> int:
        if not self._frames:
            raise StackUnderflow()
        return self._frames[-1]

    def clear(self) -> None:
        self._frames = []

    def frames(self) -> List[int]:
        """Copy of the frames, oldest first."""
        return list(self._frames)

    def is_empty(self) -> bool:
        return not self._frames

    def __len__(self) -> int:
        return len(self._frames)

    def __str__(self) -> str:
        return " ".join(f"{address:03X}" for address in reversed(self._frames))
