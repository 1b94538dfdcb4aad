from abc import ABC, abstractmethod
from numpy import ndarray, array, atleast_1d, zeros, sqrt, exp, einsum
from numpy import broadcast_arrays
from scipy.interpolate import CubicSpline


class Smoother(ABC):
    """
    Abstract base class for smooth 1D surfaces fitted to histogram data.
    """

    @abstractmethod
    def evaluate(self, x: ndarray) -> ndarray:
        pass

    def evaluate_error(self, x: ndarray) -> ndarray:
        """
        Uncertainty of the surface at the given positions. Surfaces which do
        not model errors return zero.
        """
        x = atleast_1d(x)
        err = zeros(x.size)
        return err if err.size > 1 else err[0]

    def __call__(self, x: ndarray) -> ndarray:
        return self.evaluate(x)


def gaussian_weights(x: ndarray, centres: ndarray, scale: float) -> ndarray:
    """
    Gaussian kernel weights between each position in ``x`` and each of the
    ``centres``, as an array of shape ``(x.size, centres.size)``.

    Each row is rescaled so its largest weight is one. The smoothers only use
    ratios of weights within a row, and the rescaling prevents the weights
    from underflowing far from the centres.
    """
    z = (x[:, None] - centres[None, :]) / scale
    z = 0.5 * z**2
    return exp(-(z - z.min(axis=1)[:, None]))


class GaussianSmoother(Smoother):
    """
    Smooths histogram data by Gaussian-kernel-weighted averaging of the bin
    contents, and propagates the per-bin errors through the same average.

    :param x: Positions of the histogram bins.
    :param y: Contents of the histogram bins.
    :param scale: Standard deviation of the Gaussian kernel.
    :param errors: \
        Standard error of the contents of each bin. If not given, the bins
        are taken to have no error.
    """

    def __init__(self, x: ndarray, y: ndarray, scale: float, errors: ndarray = None):
        self.x = array(x, dtype=float)
        self.y = array(y, dtype=float)
        self.scale = scale
        self.errors = (
            zeros(self.x.size) if errors is None else array(errors, dtype=float)
        )

        if self.scale <= 0:
            raise ValueError(
                f"""\n
                \r[ GaussianSmoother error ]
                \r>> The 'scale' argument must be positive, but
                \r>> the value given was {scale}.
                """
            )

        if not (self.x.size == self.y.size == self.errors.size):
            raise ValueError(
                f"""\n
                \r[ GaussianSmoother error ]
                \r>> The 'x', 'y' and 'errors' arguments must have equal sizes,
                \r>> but have sizes {self.x.size}, {self.y.size} and {self.errors.size}.
                """
            )

    def evaluate(self, x: ndarray) -> ndarray:
        k = gaussian_weights(atleast_1d(x), self.x, self.scale)
        result = (k @ self.y) / k.sum(axis=1)
        return result if result.size > 1 else result[0]

    def evaluate_error(self, x: ndarray) -> ndarray:
        k = gaussian_weights(atleast_1d(x), self.x, self.scale)
        result = sqrt((k**2) @ (self.errors**2)) / k.sum(axis=1)
        return result if result.size > 1 else result[0]


class SplineSmoother(Smoother):
    """
    Natural cubic-spline interpolation of histogram data. Bin errors are
    not used, so ``evaluate_error`` always returns zero.
    """

    def __init__(self, x: ndarray, y: ndarray):
        self.spline = CubicSpline(x, y, bc_type="natural")

    def evaluate(self, x: ndarray) -> ndarray:
        result = self.spline(atleast_1d(x))
        return result if result.size > 1 else result[0]


class GaussianSmoother2D:
    """
    Gaussian-kernel-weighted averaging of 2D histogram data, using a
    separable kernel with an independent scale for each axis.

    :param x1: Positions of the histogram bins along the first axis.
    :param x2: Positions of the histogram bins along the second axis.
    :param y: Histogram contents as an array of shape ``(x1.size, x2.size)``.
    :param scale_1: Kernel standard deviation along the first axis.
    :param scale_2: Kernel standard deviation along the second axis.
    """

    def __init__(self, x1, x2, y, scale_1: float, scale_2: float):
        self.x1 = array(x1, dtype=float)
        self.x2 = array(x2, dtype=float)
        self.y = array(y, dtype=float)
        self.scale_1 = scale_1
        self.scale_2 = scale_2

        if self.y.shape != (self.x1.size, self.x2.size):
            raise ValueError(
                f"""\n
                \r[ GaussianSmoother2D error ]
                \r>> The 'y' argument must have shape {(self.x1.size, self.x2.size)},
                \r>> but instead has shape {self.y.shape}.
                """
            )

        if scale_1 <= 0 or scale_2 <= 0:
            raise ValueError(
                f"""\n
                \r[ GaussianSmoother2D error ]
                \r>> The smoothing scales must be positive, but the
                \r>> values given were {scale_1} and {scale_2}.
                """
            )

    def evaluate(self, x1: ndarray, x2: ndarray) -> ndarray:
        """
        Evaluate the surface at the points ``(x1[i], x2[i])``.
        """
        x1, x2 = broadcast_arrays(atleast_1d(x1), atleast_1d(x2))
        x1, x2 = x1.ravel(), x2.ravel()
        a = gaussian_weights(x1, self.x1, self.scale_1)
        b = gaussian_weights(x2, self.x2, self.scale_2)
        result = einsum("ik,kl,il->i", a, self.y, b) / (a.sum(axis=1) * b.sum(axis=1))
        return result if result.size > 1 else result[0]

    def evaluate_grid(self, x1: ndarray, x2: ndarray) -> ndarray:
        """
        Evaluate the surface on the grid formed by the outer product of
        ``x1`` and ``x2``, returning an array of shape ``(x1.size, x2.size)``.
        """
        a = gaussian_weights(atleast_1d(x1), self.x1, self.scale_1)
        b = gaussian_weights(atleast_1d(x2), self.x2, self.scale_2)
        norm = a.sum(axis=1)[:, None] * b.sum(axis=1)[None, :]
        return (a @ self.y @ b.T) / norm

    def __call__(self, x1, x2):
        return self.evaluate(x1, x2)
