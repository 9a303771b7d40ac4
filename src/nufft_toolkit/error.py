# Exceptions raised by the NUFFT routines.
#
# All errors are deterministic functions of the call parameters: they are raised before any
# spreading work starts, and retrying with identical inputs fails identically.

__all__ = [
    "NUFFTError",
    "ConfigurationError",
    "NumericalDegeneracyError",
    "ResourceExhaustionError",
]


class NUFFTError(Exception):
    """
    Base class of all errors raised by nufft_toolkit.
    """


class ConfigurationError(NUFFTError, ValueError):
    """
    Invalid transform parameter: tolerance, upsampling factor, dimensionality, mode counts, options.

    Attributes
    ----------
    param: str
        Name of the offending parameter.
    value: object
        Value it was given.
    """

    def __init__(self, param: str, value, reason: str):
        self.param = param
        self.value = value
        super().__init__(f"{param}={value!r}: {reason}")


class NumericalDegeneracyError(NUFFTError, ArithmeticError):
    """
    The chosen (eps, upsampfac) pair yields a kernel which cannot be safely de-convolved.
    """

    def __init__(self, param: str, value, reason: str):
        self.param = param
        self.value = value
        super().__init__(f"{param}={value!r}: {reason}")


class ResourceExhaustionError(NUFFTError, MemoryError):
    """
    Grid allocation failed.

    Attributes
    ----------
    shape: tuple[int]
        Shape of the array which could not be allocated.
    """

    def __init__(self, shape: tuple[int], dtype):
        self.shape = tuple(map(int, shape))
        self.dtype = dtype
        super().__init__(
            f"cannot allocate {dtype} grid of shape {self.shape}: reduce `upsampfac` or the mode counts."
        )
