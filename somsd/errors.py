class SomsdError(Exception):
    """Base class for all errors raised by somsd."""


class ConfigurationError(SomsdError):
    """Invalid parameters or incompatible map/data dimensions.

    Raised before any codebook is modified.
    """


class DataFormatError(SomsdError):
    """A data or map file could not be parsed."""


class TrainingInterrupted(SomsdError):
    """Training was aborted by a second cancellation request."""
