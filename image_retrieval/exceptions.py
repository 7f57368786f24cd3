"""
Exception types raised by the image retrieval query stage.

Only failures that concern the query itself are raised. A candidate
document whose stored feature is missing or corrupt never produces an
exception; it simply does not match.
"""


class ImageSearchError(Exception):
    """Base class for all image retrieval errors."""


class QueryParsingError(ImageSearchError):
    """The image query request is malformed or resolves to no feature."""


class ImageProcessingError(ImageSearchError):
    """The query image or the query's stored feature could not be processed."""
