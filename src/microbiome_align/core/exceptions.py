"""Error taxonomy for loading, filtering and alignment."""


class AlignmentError(ValueError):
    """Base exception for microbiome_align data errors."""

    pass


class UnsupportedFormat(AlignmentError):
    """Raised when an input file has an extension no reader handles."""

    pass


class ParseError(AlignmentError):
    """Raised when a table cell or file cannot be parsed."""

    pass


class MalformedMatrix(AlignmentError):
    """Raised when a dissimilarity matrix is not square, labelled
    consistently, symmetric and zero on the diagonal."""

    pass


class AmbiguousFilter(AlignmentError):
    """Raised when exclude and keep values are supplied together."""

    pass


class UnknownAttribute(AlignmentError):
    """Raised when a filter references a column missing from the
    metadata."""

    pass


class EmptyAlignment(AlignmentError):
    """Raised when no identifiers are shared by all aligned structures."""

    pass


class DuplicateIdentifier(AlignmentError):
    """Raised when an identifier collection contains repeated IDs."""

    pass
