from __future__ import annotations

from typing import Optional


class MazeRunnerError(Exception):
    pass


class ParseError(MazeRunnerError):
    def __init__(self, message: str, line: int = 0, col: int = 0):
        self.message = message
        self.line = line
        self.col = col
        super().__init__(f"line {line}: {message}" if line else message)


class ProgramError(MazeRunnerError):
    """Raised for faults in authored code: bad calls, type errors, ``raise``/``throw``."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.message = message
        self.line = line
        super().__init__(message)


class SessionError(MazeRunnerError):
    pass
