"""
Exception hierarchy for the causal engine.

Every error is raised where it is detected and propagates to the caller.
Each class also derives from the closest builtin so callers that only know
``KeyError``/``IndexError``/``ValueError`` still catch the right thing.
"""


class CausalEngineError(Exception):
    """Base class for all causal engine errors."""
    pass


class NotFoundError(CausalEngineError, KeyError):
    """Raised for unknown ids, names or file extensions, or missing prerequisite data."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep it readable
        return str(self.args[0]) if self.args else ""


class OutOfRangeError(CausalEngineError, IndexError):
    """Raised when a matrix position lies outside its dimensions."""
    pass


class ShrinkRejectedError(CausalEngineError, ValueError):
    """Raised when a matrix is resized to a smaller dimension."""
    pass


class MalformedInputError(CausalEngineError, ValueError):
    """Raised when an input file is missing or its content is inconsistent."""
    pass


class DivisionUndefinedError(CausalEngineError, ZeroDivisionError):
    """Raised when conditioning on evidence with zero probability."""
    pass


class CycleDetectedError(CausalEngineError):
    """Raised when inference meets a cycle in the network structure."""

    def __init__(self, node_ids, message: str = "Network contains a cycle"):
        self.node_ids = list(node_ids)
        super().__init__(f"{message}: {self.node_ids}")


class QueryStateError(CausalEngineError, RuntimeError):
    """Raised when a query is executed without being populated."""
    pass
