from functools import lru_cache

from whittle_likelihood_inference.backend import BackendManager

xp = BackendManager.get_backend()

import numpy
import param
from param import Parameterized
from param.parameterized import ParameterizedMetaclass

from whittle_likelihood_inference.exceptions import (
    DimensionMismatchError,
    InvalidParameterError,
    MissingDerivativeError,
)
from whittle_likelihood_inference.utils import (
    pair_index,
    parameter_pairs,
    triangular_number,
)


class ModelParameter(param.Parameter):
    """
    Class used to represent a time series model's parameter. When writing a new model, any parameter should be of
    this type. See for instance the models defined in the univariate module. The order in which parameters are
    declared in the class body is the order of the parameter vector.

    Attributes
    ----------
    bounds: tuple[float, float]
        Open range of admissible parameter values. Checked when a model is instantiated, and used by
        the optimizers during inference.

    default: float
        Default value of the parameter.
    """

    __slots__ = [
        "bounds",
    ]

    def __init__(self, *args, **kwargs):
        self.bounds = kwargs.pop("bounds")
        super().__init__(*args, allow_refs=True, per_instance=True, **kwargs)


class TimeSeriesModelMeta(ParameterizedMetaclass):
    """Metaclass of model types, so that model types can be added, e.g. OU + Matern."""

    def __add__(cls, other):
        return additive_model(cls, other)


class TimeSeriesModel(Parameterized, metaclass=TimeSeriesModelMeta):
    r"""
    Class defining the general interface for stationary time series models of dimension ndim.

    A model is a light-weight value instantiated from a parameter vector on every likelihood evaluation.
    Subclasses declare their parameters as ModelParameter and implement some of the hooks below. All hooks
    are vectorized over their frequency (or lag) argument. For a model of dimension d = 1 the output has the
    shape of the argument; for d > 1 the output has shape (L, ...) with L = d(d + 1)/2, following the
    Hermitian-compact layout of utils.hermitian_index.

    Hook | output shape (d = 1) | output shape (d > 1)
    :----------- |:-------------:| -----------:
    sdf, acv         | (n, )       | (L, n)
    grad_sdf, grad_acv         | (npars, n)        | (npars, L, n)
    hess_sdf, hess_acv         | (npars(npars + 1)/2, n)        | (npars(npars + 1)/2, L, n)

    Second derivatives are ordered by utils.pair_index. Hooks that are not implemented raise
    MissingDerivativeError, which the likelihood lets propagate to the caller.

    Spectral densities use angular frequencies, $f(\omega) = (2\pi)^{-1}\int \gamma(\tau)e^{-i\omega\tau}d\tau$,
    and the cross-covariance convention $\gamma_{ij}(\tau) = Cov(X_i(t + \tau), X_j(t))$.
    """

    ndim = 1

    def __init__(self, values=None, **params):
        """
        Parameters
        ----------
        values
            parameter vector, ordered as parameter_names(). Alternatively, parameters can be passed by name.
        """
        if values is not None:
            values = self.check_values(values)
            params.update(
                {name: float(v) for name, v in zip(self.parameter_names(), values)}
            )
        super().__init__(**params)
        self.check_domain()

    @classmethod
    def parameter_names(cls) -> list[str]:
        return [
            name
            for name, p in cls.param.objects(instance=False).items()
            if isinstance(p, ModelParameter)
        ]

    @classmethod
    def npars(cls) -> int:
        return len(cls.parameter_names())

    @classmethod
    def parameter_bounds(cls) -> list[tuple[float, float]]:
        """bounds of the parameters as a list. Useful to pass to the bounds parameter of an optimizer"""
        return [getattr(cls.param, name).bounds for name in cls.parameter_names()]

    @classmethod
    def ncomponents(cls) -> int:
        """number of entries of the Hermitian-compact layout"""
        return triangular_number(cls.ndim)

    @classmethod
    def implements(cls, hook: str) -> bool:
        """True if the model type overrides the given hook, e.g. 'grad_acv'."""
        return getattr(cls, hook) is not getattr(TimeSeriesModel, hook)

    @classmethod
    def label(cls) -> str:
        return cls.__name__

    @classmethod
    def check_values(cls, values) -> numpy.ndarray:
        values = numpy.asarray(BackendManager.to_cpu(values), dtype=numpy.float64)
        n = cls.npars()
        if values.shape != (n,):
            raise DimensionMismatchError(
                f"{cls.label()} model has {n} parameters, but {values.size} were provided."
            )
        return values

    def check_domain(self):
        """Check that every parameter lies in the open interval defined by its bounds."""
        for name in self.parameter_names():
            lower, upper = getattr(self.param, name).bounds
            value = getattr(self, name)
            if not lower < value < upper:
                raise InvalidParameterError(
                    f"{self.label()} model requires {lower} < {name} < {upper}, got {name}={value}."
                )

    def to_array(self) -> numpy.ndarray:
        """parameter vector of the model. Useful to pass to the x0 parameter of a numerical optimizer"""
        return numpy.array([getattr(self, name) for name in self.parameter_names()])

    def sdf(self, omega: xp.ndarray) -> xp.ndarray:
        """spectral density at the angular frequencies omega"""
        raise NotImplementedError()

    def acv(self, tau: xp.ndarray) -> xp.ndarray:
        """autocovariance at the lags tau"""
        raise NotImplementedError()

    def grad_sdf(self, omega: xp.ndarray) -> xp.ndarray:
        raise MissingDerivativeError(
            f"{self.label()} model does not implement the gradient of its spectral density."
        )

    def hess_sdf(self, omega: xp.ndarray) -> xp.ndarray:
        raise MissingDerivativeError(
            f"{self.label()} model does not implement the Hessian of its spectral density."
        )

    def grad_acv(self, tau: xp.ndarray) -> xp.ndarray:
        raise MissingDerivativeError(
            f"{self.label()} model does not implement the gradient of its autocovariance."
        )

    def hess_acv(self, tau: xp.ndarray) -> xp.ndarray:
        raise MissingDerivativeError(
            f"{self.label()} model does not implement the Hessian of its autocovariance."
        )


class AdditiveModel(TimeSeriesModel):
    """
    Model of a sum of independent processes. The parameter vector is the concatenation of the parameter vectors
    of the components. Model types are combined with the + operator.

    Examples
    --------
    >>> from whittle_likelihood_inference.models.univariate import OU, Matern
    >>> model_type = OU + Matern
    >>> model_type.parameter_names()
    ['sigma', 'theta', 'sigma', 'nu', 'a']
    >>> model = model_type([1., 2., 1., 1.5, 3.])
    >>> model.children[1].nu
    1.5
    """

    components = ()

    def __init__(self, values=None, **params):
        if values is None:
            raise InvalidParameterError(
                f"{self.label()} model should be instantiated from a parameter vector."
            )
        values = self.check_values(values)
        children = []
        start = 0
        for component in self.components:
            stop = start + component.npars()
            children.append(component(values[start:stop]))
            start = stop
        super().__init__(**params)
        self.children = children

    @classmethod
    def parameter_names(cls) -> list[str]:
        return [name for c in cls.components for name in c.parameter_names()]

    @classmethod
    def parameter_bounds(cls) -> list[tuple[float, float]]:
        return [bounds for c in cls.components for bounds in c.parameter_bounds()]

    @classmethod
    def implements(cls, hook: str) -> bool:
        return all(c.implements(hook) for c in cls.components)

    @classmethod
    def label(cls) -> str:
        return " + ".join(c.label() for c in cls.components)

    @classmethod
    def offsets(cls) -> list[int]:
        """position of the first parameter of each component in the parameter vector"""
        offsets = [0]
        for c in cls.components[:-1]:
            offsets.append(offsets[-1] + c.npars())
        return offsets

    @classmethod
    def hessian_blocks(cls) -> list[list[int]]:
        """for each component, the pair indices of its own parameter pairs in the full Hessian buffers"""
        return [
            [pair_index(j + o, k + o) for j, k in parameter_pairs(c.npars())]
            for c, o in zip(cls.components, cls.offsets())
        ]

    def check_domain(self):
        pass

    def to_array(self) -> numpy.ndarray:
        return numpy.concatenate([child.to_array() for child in self.children])

    def _block_hessian(self, hessians):
        out = xp.zeros(
            (triangular_number(self.npars()),) + hessians[0].shape[1:],
            dtype=xp.result_type(*hessians),
        )
        for index, h in zip(self.hessian_blocks(), hessians):
            out[index] = h
        return out

    def sdf(self, omega):
        return sum(child.sdf(omega) for child in self.children)

    def acv(self, tau):
        return sum(child.acv(tau) for child in self.children)

    def grad_sdf(self, omega):
        return xp.concatenate([child.grad_sdf(omega) for child in self.children], 0)

    def grad_acv(self, tau):
        return xp.concatenate([child.grad_acv(tau) for child in self.children], 0)

    def hess_sdf(self, omega):
        return self._block_hessian([child.hess_sdf(omega) for child in self.children])

    def hess_acv(self, tau):
        return self._block_hessian([child.hess_acv(tau) for child in self.children])


@lru_cache(maxsize=None)
def _additive_model(components: tuple) -> type:
    ndims = {c.ndim for c in components}
    if len(ndims) != 1:
        raise DimensionMismatchError(
            "Only models of the same dimension can be added, got dimensions "
            + ", ".join(str(c.ndim) for c in components)
        )
    name = "Plus".join(c.__name__ for c in components)
    return TimeSeriesModelMeta(
        name, (AdditiveModel,), dict(components=components, ndim=ndims.pop(), __module__=__name__)
    )


def additive_model(*model_types) -> type:
    """
    Model type of the sum of independent processes of the passed model types. Additive model types
    are flattened, so that (A + B) + C and A + (B + C) are the same type.
    """
    components = []
    for m in model_types:
        if issubclass(m, AdditiveModel):
            components.extend(m.components)
        else:
            components.append(m)
    return _additive_model(tuple(components))
