from mcpost.pdf.base import InverseTable, FittedDensity, ONE_SIGMA, TWO_SIGMA
from mcpost.pdf.smoothing import GaussianSmoother, SplineSmoother, GaussianSmoother2D
from mcpost.pdf.marginal import Posterior1D
from mcpost.pdf.joint import Posterior2D

__all__ = [
    "InverseTable",
    "FittedDensity",
    "ONE_SIGMA",
    "TWO_SIGMA",
    "GaussianSmoother",
    "SplineSmoother",
    "GaussianSmoother2D",
    "Posterior1D",
    "Posterior2D",
]
