from packify import UsageError


def vert(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a ValueError with the given message."""
    if not condition:
        raise ValueError(error_message)

def tert(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a TypeError with the given message."""
    if not condition:
        raise TypeError(error_message)

def tressa(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a UsageError with the given message."""
    if not condition:
        raise UsageError(error_message)
