import numpy
import warnings


CUPY_INSTALLED = True

try:
    import cupy
    from cupy_backends.cuda.api.runtime import CUDARuntimeError
except ModuleNotFoundError:
    CUPY_INSTALLED = False


class BackendManager:
    """
    Class-level configuration of the array module used throughout the package.

    The backend must be chosen before any other module of the package is imported, since modules
    bind `xp = BackendManager.get_backend()` at import time. Once the backend has been requested,
    it is blocked and cannot be changed anymore.
    """

    backend_name = "numpy"
    block = False

    @classmethod
    def list_avail(cls):
        """list available backends. As Cupy can only be used on GPU, it will be listed as available only if the package
        is installed and a GPU device is available"""
        print("Numpy CPU available")
        if CUPY_INSTALLED:
            try:
                cupy.zeros(1)
                print("CUPY GPU available")
            except CUDARuntimeError:
                pass

    @classmethod
    def set_backend(cls, name: str):
        if cls.block and name != cls.backend_name:
            # raise an error as the backend should be set before usage
            raise Exception(
                f"Cannot change backend (current: {cls.backend_name}). Make sure you set the backend first thing."
            )
        if name == "cupy" and (not CUPY_INSTALLED):
            warnings.warn(
                "Module Cupy not found, will not be available as backend. Falling back to numpy."
            )
            name = "numpy"
        elif name not in ("numpy", "cupy"):
            raise ValueError(f"Unknown backend {name}, should be one of numpy, cupy.")
        cls.backend_name = name

    @classmethod
    def get_backend(cls):
        cls.block = True
        if cls.backend_name == "numpy":
            return numpy
        elif cls.backend_name == "cupy":
            return cupy

    @classmethod
    def convert(cls, a):
        """Convert an array-like to an array of the current backend."""
        if cls.backend_name == "cupy":
            return cupy.asarray(a)
        return numpy.asarray(a)

    @classmethod
    def to_cpu(cls, a):
        if cls.backend_name == "cupy":
            return a.get()
        return a

    @classmethod
    def get_zeros(cls):
        if cls.backend_name == "numpy":
            return numpy.zeros
        elif cls.backend_name == "cupy":
            return cupy.zeros

    @classmethod
    def get_slogdet(cls):
        if cls.backend_name == "numpy":
            return numpy.linalg.slogdet
        elif cls.backend_name == "cupy":
            return cupy.linalg.slogdet
        else:
            raise Exception("No backend set")

    @classmethod
    def get_inv(cls):
        if cls.backend_name == "numpy":
            return numpy.linalg.inv
        elif cls.backend_name == "cupy":
            return cupy.linalg.inv
        else:
            raise Exception("No backend set")

    @classmethod
    def get_fft_methods(cls):
        if cls.backend_name == "numpy":
            return numpy.fft.fft, numpy.fft.ifft
        elif cls.backend_name == "cupy":
            return cupy.fft.fft, cupy.fft.ifft
        else:
            raise Exception("No backend set")

    @classmethod
    def get_linalg_error(cls):
        """Exception type raised by the backend's matrix inversion on singular input. Cupy reuses numpy's."""
        return numpy.linalg.LinAlgError
