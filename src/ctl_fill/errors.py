class PreconditionViolation(ValueError):
    """Raised when a field, value or kind cannot be written at all (nothing is mutated)."""
    pass

class InteractionNotFound(RuntimeError):
    """Raised when an expected picker panel, option or revealed input never appears."""
    pass
