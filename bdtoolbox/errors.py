"""
errors.py - Exceptions and warnings raised by the toolbox

Every exception carries an ``ident`` in the "area:kind" form used throughout
the toolbox (e.g. ``"syscheck:pardef"``), so front-ends can report a short
tag alongside the full message.
"""


class BDError(Exception):
    """Base class for toolbox errors."""

    def __init__(self, ident: str, message: str):
        super().__init__(message)
        self.ident = ident
        self.message = message

    def __str__(self):
        return self.message


class SysCheckError(BDError, ValueError):
    """A system definition is malformed."""


class SolverError(BDError, RuntimeError):
    """A solver is unknown or cannot be applied to the system."""


class BDWarning(UserWarning):
    """Base class for toolbox warnings."""


class SolverWarning(BDWarning):
    """Numerical trouble inside a solver (overflow, non-finite state)."""


class BoldWarning(BDWarning):
    """The BOLD computation produced invalid values."""


class ControlWarning(BDWarning):
    """The control refused an action (e.g. evolving out-of-range states)."""
