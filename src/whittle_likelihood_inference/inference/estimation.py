import warnings
from typing import Callable

import numpy
from scipy.optimize import minimize

from whittle_likelihood_inference.inference.likelihood import WhittleLikelihoodBase
from whittle_likelihood_inference.models.base import TimeSeriesModel

BOUNDS_MARGIN = 1e-8


def open_bounds(bounds: list[tuple[float, float]]) -> list[tuple[float, float]]:
    """
    Shrink open parameter ranges to closed ranges, as optimizers may evaluate the objective on the bounds.
    Infinite bounds are kept as they are.

    Examples
    --------
    >>> open_bounds([(0, numpy.inf), (-1, 1)])
    [(1e-08, inf), (-0.99999999, 0.99999999)]
    """
    closed = []
    for lower, upper in bounds:
        if numpy.isfinite(lower):
            lower = lower + BOUNDS_MARGIN * max(1.0, abs(lower))
        if numpy.isfinite(upper):
            upper = upper - BOUNDS_MARGIN * max(1.0, abs(upper))
        closed.append((lower, upper))
    return closed


class Estimator:
    """
    Class to define an estimator that maximises a Whittle likelihood.

    Attributes
    ----------
    likelihood: WhittleLikelihoodBase
        Whittle or debiased Whittle likelihood used for fitting.

    use_gradients: bool
        Whether to pass the analytic gradient of the likelihood to the optimizer.

    max_iter: int
        Maximum number of iterations of the optimization procedure

    optim_options: dict
        Additional options passed to the optimizer.

    method: string
        Optimization procedure. Should be one of the methods of scipy.optimize.minimize that support bounds.

    Examples
    --------
    >>> from whittle_likelihood_inference.models.univariate import OU
    >>> from whittle_likelihood_inference.inference.likelihood import DebiasedWhittleLikelihood
    >>> numpy.random.seed(1712)
    >>> likelihood = DebiasedWhittleLikelihood(OU, numpy.random.randn(512), 1.)
    >>> estimate = Estimator(likelihood)(OU([1., 0.5]))
    """

    def __init__(
        self,
        likelihood: WhittleLikelihoodBase,
        use_gradients: bool = True,
        max_iter: int = 100,
        optim_options: dict = None,
        method: str = "L-BFGS-B",
    ):
        """

        Parameters
        ----------
        likelihood
            Whittle likelihood used for fitting.

        use_gradients
            Whether to use gradients in the optimization procedure

        max_iter
            Maximum number of iterations of the optimization procedure

        optim_options
            Additional options passed to the optimizer.

        method
            Optimization procedure
        """
        self.likelihood = likelihood
        self.max_iter = max_iter
        self.use_gradients = use_gradients
        self.optim_options = dict() if optim_options is None else optim_options
        self.method = method
        self.opt_result = None

    def __call__(self, model: TimeSeriesModel, opt_callback: Callable = None) -> TimeSeriesModel:
        """
        Fits the model type of the likelihood to its data.

        Parameters
        ----------
        model: TimeSeriesModel
            Initial guess, an instance of the model type of the likelihood

        opt_callback: function handle
            Callback function called by the optimizer

        Returns
        -------
        model: TimeSeriesModel
            The fitted model, a new instance
        """
        model_type = self.likelihood.model
        x0 = model.to_array()
        bounds = open_bounds(model_type.parameter_bounds())
        options = dict(maxiter=self.max_iter)
        options.update(self.optim_options)

        if self.use_gradients:
            opt_result = minimize(
                self._objective_and_gradient,
                x0,
                jac=True,
                method=self.method,
                bounds=bounds,
                callback=opt_callback,
                options=options,
            )
        else:
            opt_result = minimize(
                self._objective,
                x0,
                method=self.method,
                bounds=bounds,
                callback=opt_callback,
                options=options,
            )
        if not opt_result.success:
            warnings.warn(f"Issue during optimization: {opt_result.message}")
        self.opt_result = opt_result
        return model_type(opt_result.x)

    def _objective(self, values: numpy.ndarray) -> float:
        return -self.likelihood(values)

    def _objective_and_gradient(self, values: numpy.ndarray):
        # the likelihood fills the gradient buffer in place, value and gradient share one evaluation
        gradient = numpy.zeros_like(values)
        value = self.likelihood(True, gradient, None, values)
        return -value, -gradient

    def covmat(self, model: TimeSeriesModel) -> numpy.ndarray:
        """
        Approximate covariance matrix of the parameter estimates, the inverse of the Fisher information for the
        debiased likelihood, or of minus the observed Hessian for the standard likelihood.

        Parameters
        ----------
        model
            fitted model

        Returns
        -------
        covmat: ndarray
            shape (npars, npars)
        """
        values = model.to_array()
        hessian = numpy.zeros((values.size, values.size))
        self.likelihood(None, None, hessian, values)
        if not self.likelihood.expected_hessian:
            hessian = -hessian
        return numpy.linalg.inv(hessian)
