from numpy import ndarray, array, concatenate, zeros, linspace, sqrt, atleast_1d
from numpy import column_stack, savetxt
from mcpost.exceptions import InsufficientDataError
from mcpost.pdf.base import InverseTable, FittedDensity, ONE_SIGMA, TWO_SIGMA
from mcpost.pdf.binning import axis_resolution_and_scale, histogram_1d
from mcpost.pdf.smoothing import GaussianSmoother, SplineSmoother


def evaluate_in_chunks(func, x: ndarray, chunk_size: int = 4096) -> ndarray:
    # limits the size of the kernel-weight arrays built by the smoothers
    chunks = [
        atleast_1d(func(x[i : i + chunk_size])) for i in range(0, x.size, chunk_size)
    ]
    return concatenate(chunks)


class Posterior1D:
    """
    Estimates a 1D marginal posterior distribution from a set of weighted samples.

    Samples are added using ``add_point`` or ``add_points``, after which the
    estimate is built by calling ``generate``. The samples are binned into
    a histogram whose bin width is chosen by the Freedman-Diaconis rule, and a
    smooth surface is fitted to the histogram. The surface is then integrated
    numerically to find its normalisation and to build an inverse cumulative
    distribution table, which is used for quantile look-ups.

    The stored samples are discarded once the estimate is generated. To
    regenerate the estimate, add a new set of samples and call ``generate``
    again.

    Note that ``evaluate`` returns the value of the smoothed surface, which is
    not normalised - divide by the ``normalization`` attribute to obtain a
    probability density.
    """

    methods = ("gaussian", "spline")
    # number of integration steps per histogram bin
    integration_factor = 100
    # number of steps in the grid searched by peak()
    peak_points = 10000

    def __init__(self):
        self.__values = []
        self.__weights = []
        self.__log_likes = []
        self.__err_means = []
        self.__err_vars = []
        self.__fit = None

        self.min = None
        self.max = None
        self.mean = None
        self.method = None
        self.scale = None
        self.resolution = None
        self.best_fit = None
        # location and surface value of the maximum of the integration grid
        self.grid_peak = None

    def add_point(
        self,
        x: float,
        weight: float,
        log_like: float = 0.0,
        err_mean: float = 0.0,
        err_var: float = 0.0,
    ):
        """
        Add a single weighted sample.

        :param float x: The sample value.
        :param float weight: The (relative) probability weight of the sample.
        :param float log_like: \
            The likelihood value of the sample in the ``-2 ln L`` convention,
            used to track the best-fitting sample.
        :param float err_mean: Mean of the likelihood error estimate.
        :param float err_var: Variance of the likelihood error estimate.
        """
        self.add_points([x], [weight], [log_like], [err_mean], [err_var])

    def add_points(
        self,
        x: ndarray,
        weights: ndarray,
        log_likes: ndarray = None,
        err_means: ndarray = None,
        err_vars: ndarray = None,
    ):
        """
        Add a set of weighted samples. The optional arrays default to zero.
        """
        x = array(x, dtype=float).flatten()
        columns = [x, array(weights, dtype=float).flatten()]
        for c in (log_likes, err_means, err_vars):
            columns.append(zeros(x.size) if c is None else array(c, dtype=float).flatten())

        sizes = [c.size for c in columns]
        if len(set(sizes)) != 1:
            raise ValueError(
                f"""\n
                \r[ Posterior1D error ]
                \r>> All given sample arrays must have the same size,
                \r>> but instead have sizes {sizes}.
                """
            )

        for buffer, c in zip(self.__buffers(), columns):
            buffer.append(c)

    def __buffers(self):
        return (
            self.__values,
            self.__weights,
            self.__log_likes,
            self.__err_means,
            self.__err_vars,
        )

    def generate(self, method: str = "gaussian", scale: float = 0.0):
        """
        Build the density estimate from the added samples.

        :param str method: \
            The smoothing method, either ``"gaussian"`` for Gaussian-kernel
            smoothing (which also propagates the likelihood errors) or
            ``"spline"`` for cubic-spline interpolation of the histogram.

        :param float scale: \
            Width of the Gaussian smoothing kernel. If zero, the width is set
            to one eighth of the interquartile range of the samples.
        """
        if method not in self.methods:
            raise ValueError(
                f"""\n
                \r[ Posterior1D error ]
                \r>> The 'method' argument must be one of {self.methods},
                \r>> but the value given was '{method}'.
                """
            )

        if len(self.__values) == 0:
            raise InsufficientDataError(
                """\n
                \r[ Posterior1D error ]
                \r>> No samples have been added since the estimate
                \r>> was last generated.
                """
            )

        values, weights, log_likes, _, err_vars = [
            concatenate(b) for b in self.__buffers()
        ]
        lower, upper = values.min(), values.max()
        if values.size < 2 or not upper > lower:
            raise InsufficientDataError(
                """\n
                \r[ Posterior1D error ]
                \r>> At least 2 different sample values need to be added
                \r>> before generating the estimate.
                """
            )

        total_weight = weights.sum()
        if not total_weight > 0:
            raise InsufficientDataError(
                f"""\n
                \r[ Posterior1D error ]
                \r>> The total weight of the samples must be positive,
                \r>> but is {total_weight}.
                """
            )

        resolution, scale = axis_resolution_and_scale(values, weights, scale)
        x, y, errors = histogram_1d(values, weights, err_vars, resolution)

        if method == "gaussian":
            surface = GaussianSmoother(x, y, scale, errors)
        else:
            surface = SplineSmoother(x, y)

        # integrate the surface with the trapezoid rule, building the
        # inverse cumulative distribution as we go
        n = self.integration_factor * resolution
        delta = (upper - lower) / n
        grid = linspace(lower, upper, n + 1)
        density = evaluate_in_chunks(surface.evaluate, grid).clip(min=0.0)
        cumulative = zeros(n + 1)
        cumulative[1:] = (0.5 * (density[1:] + density[:-1]) * delta).cumsum()
        normalization = cumulative[-1]

        if not normalization > 0:
            raise InsufficientDataError(
                """\n
                \r[ Posterior1D error ]
                \r>> The smoothed density integrates to zero.
                """
            )

        error_scale = sqrt((errors**2).sum()) / total_weight * normalization
        self.__fit = FittedDensity(
            surface=surface,
            table=InverseTable(cumulative / normalization, grid),
            normalization=normalization,
            error_scale=error_scale,
        )

        self.min, self.max = lower, upper
        self.mean = (values * weights).sum() / total_weight
        self.best_fit = values[log_likes.argmin()]
        self.method = method
        self.scale = scale
        self.resolution = resolution
        k = density.argmax()
        self.grid_peak = (grid[k], density[k])

        for buffer in self.__buffers():
            buffer.clear()

    @property
    def fitted(self) -> FittedDensity:
        if self.__fit is None:
            raise ValueError(
                """\n
                \r[ Posterior1D error ]
                \r>> The estimate has not been generated - call
                \r>> the 'generate' method first.
                """
            )
        return self.__fit

    @property
    def normalization(self) -> float:
        return self.fitted.normalization

    def evaluate(self, x: ndarray) -> ndarray:
        """
        Evaluate the smoothed surface at the given positions. The returned values
        are not normalised.
        """
        return self.fitted.surface.evaluate(x)

    def __call__(self, x: ndarray) -> ndarray:
        return self.evaluate(x)

    def evaluate_error(self, x: ndarray) -> ndarray:
        """
        Uncertainty of the normalised density at the given positions, combining
        the local error of the smoothed surface with the error of the
        normalisation. Only Gaussian smoothing models errors, so this returns
        zero for spline smoothing.
        """
        fit = self.fitted
        if self.method != "gaussian":
            return fit.surface.evaluate_error(x)

        a = fit.surface.evaluate(x)
        da = fit.surface.evaluate_error(x)
        norm = fit.normalization
        # equivalent to a / norm * sqrt((da / a)**2 + (error_scale / norm)**2)
        return sqrt(da**2 + (a * fit.error_scale / norm) ** 2) / norm

    def quantile(self, p):
        """
        Returns the value below which the given fraction of the total probability lies.

        :param p: Cumulative probability, or an array of them, between 0 and 1.
        """
        p_arr = atleast_1d(p)
        if ((p_arr < 0.0) | (p_arr > 1.0)).any():
            raise ValueError(
                f"""\n
                \r[ Posterior1D error ]
                \r>> Cumulative probabilities must be between 0 and 1,
                \r>> but the value given was {p}.
                """
            )
        return self.fitted.table(p)

    def median(self) -> float:
        return self.quantile(0.5)

    def peak(self) -> float:
        """
        Locates the maximum of the estimate by a search over a uniform grid.
        """
        grid = linspace(self.min, self.max, self.peak_points + 1)
        values = evaluate_in_chunks(self.evaluate, grid)
        return grid[values.argmax()]

    def credible_interval(self, fraction: float) -> tuple[float, float]:
        """
        The two-sided credible interval, centred on the median, which contains a
        chosen fraction of the total probability.

        :param float fraction: \
            Fraction of the total probability contained by the interval. The given
            value must be between 0 and 1.

        :return: \
            A tuple of the lower and upper limits of the interval in the form
            ``(lower_limit, upper_limit)``.
        """
        if not 0.0 < fraction < 1.0:
            raise ValueError(
                f"""\n
                \r[ Posterior1D error ]
                \r>> The 'fraction' argument must have a value greater than
                \r>> zero and less than one, but the value given was {fraction}.
                """
            )
        return self.quantile(0.5 - 0.5 * fraction), self.quantile(0.5 + 0.5 * fraction)

    def one_sigma_two_sided(self) -> tuple[float, float]:
        return self.credible_interval(ONE_SIGMA)

    def two_sigma_two_sided(self) -> tuple[float, float]:
        return self.credible_interval(TWO_SIGMA)

    def upper_limit(self, fraction: float) -> float:
        """
        The value below which a chosen fraction of the total probability lies.
        """
        return self.quantile(fraction)

    def lower_limit(self, fraction: float) -> float:
        """
        The value above which a chosen fraction of the total probability lies.
        """
        return self.quantile(1.0 - fraction)

    def write_to_file(self, filename: str, n: int, include_error: bool = False):
        """
        Write the estimate evaluated at ``n + 1`` evenly spaced points between the
        minimum and maximum sample values. Each row holds the position and the
        value of the estimate, followed by its error if ``include_error`` is True.
        """
        if n < 2:
            raise ValueError(
                f"""\n
                \r[ Posterior1D error ]
                \r>> Invalid number of points {n}, should be at least 2.
                """
            )
        x = linspace(self.min, self.max, n + 1)
        columns = [x, evaluate_in_chunks(self.evaluate, x)]
        if include_error:
            columns.append(evaluate_in_chunks(self.evaluate_error, x))
        savetxt(filename, column_stack(columns), delimiter="\t", fmt="%.10g")
