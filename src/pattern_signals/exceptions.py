"""Domain exceptions."""


class PatternSignalsError(Exception):
    """Base class for all pattern_signals errors."""


class NumericDegeneracyError(PatternSignalsError, ArithmeticError):
    """A score or ratio needed a reference price or average that was zero."""


class MalformedSeriesError(PatternSignalsError, ValueError):
    """A price series violates its ordering contract."""
