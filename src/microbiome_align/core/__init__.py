"""Core configuration and error types for microbiome alignment workflows."""

from .config import Config, FilterMode, InputEncoding, LoaderSettings
from .exceptions import (
    AlignmentError,
    AmbiguousFilter,
    DuplicateIdentifier,
    EmptyAlignment,
    MalformedMatrix,
    ParseError,
    UnknownAttribute,
    UnsupportedFormat,
)

__all__ = [
    "Config",
    "FilterMode",
    "InputEncoding",
    "LoaderSettings",
    "AlignmentError",
    "AmbiguousFilter",
    "DuplicateIdentifier",
    "EmptyAlignment",
    "MalformedMatrix",
    "ParseError",
    "UnknownAttribute",
    "UnsupportedFormat",
]
