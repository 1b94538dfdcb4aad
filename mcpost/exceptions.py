class MalformedInputError(ValueError):
    """
    Raised when a chain file or error log does not follow the expected
    text format, for example when the number of fields changes between lines.
    """


class InsufficientDataError(ValueError):
    """
    Raised when a sample set is too degenerate for the requested estimate,
    for example when all samples share the same value.
    """
