"""Identity of the calling-code location responsible for a mutation."""

import traceback
from dataclasses import dataclass, field
from types import FrameType


@dataclass(frozen=True)
class CallSite:
    """Source location of an attempted mutation.

    Two call sites are equal when they point at the same file and line; the
    function name is carried for display only.
    """

    filename: str
    lineno: int
    function: str = field(default="", compare=False)

    @classmethod
    def from_frame(cls, frame: FrameType) -> "CallSite":
        """Build the call site of the line currently executing in `frame`."""
        code = frame.f_code
        return cls(filename=code.co_filename, lineno=frame.f_lineno, function=code.co_name)

    def __str__(self) -> str:
        if self.function:
            return f"{self.filename}:{self.lineno} in {self.function}"
        return f"{self.filename}:{self.lineno}"


def capture_stack(frame: FrameType) -> traceback.StackSummary:
    """Capture the full call stack ending at `frame`, outermost frame first."""
    return traceback.extract_stack(frame)
