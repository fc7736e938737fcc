__version__ = "1.0.0"

from whittle_likelihood_inference.timeseries import TimeSeries
from whittle_likelihood_inference.models.univariate import OU, Matern
from whittle_likelihood_inference.models.bivariate import CorrelatedOU
from whittle_likelihood_inference.inference.periodogram import Periodogram, ExpectedPeriodogram
from whittle_likelihood_inference.inference.likelihood import (
    WhittleLikelihood,
    DebiasedWhittleLikelihood,
)
from whittle_likelihood_inference.inference.estimation import Estimator
