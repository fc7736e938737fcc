class WhittleError(Exception):
    """Base class of the errors raised by the likelihood engine."""


class InvalidParameterError(WhittleError, ValueError):
    """A scalar argument or model parameter lies outside its admissible domain, e.g. a non-positive
    sampling interval."""


class DimensionMismatchError(WhittleError, ValueError):
    """The data or the parameter vector disagrees with the dimensions declared by the model."""


class ShapeMismatchError(WhittleError, ValueError):
    """A caller-supplied output buffer does not have the shape implied by the parameter vector."""


class MissingDerivativeError(WhittleError, NotImplementedError):
    """A derivative was requested from a model that does not implement the corresponding hook."""
