from time import time
from numpy import ndarray, array, concatenate, zeros, linspace, sort, savetxt
from numpy import atleast_1d, array_split
from mcpost.exceptions import InsufficientDataError
from mcpost.pdf.base import InverseTable, FittedDensity, ONE_SIGMA, TWO_SIGMA
from mcpost.pdf.binning import axis_resolution_and_scale, histogram_2d
from mcpost.pdf.smoothing import GaussianSmoother2D
from mcpost.utilities import StatusPrinter


class Posterior2D:
    """
    Estimates a 2D joint marginal posterior distribution from a set of
    weighted samples.

    Samples are binned into a 2D histogram (with the number of bins along each
    axis chosen independently by the Freedman-Diaconis rule) which is smoothed
    with a Gaussian kernel. The smoothed surface is sampled on a uniform grid to
    find its normalisation and to build a table which maps an enclosed
    probability to the density level of the corresponding highest-density
    region.

    The stored samples are discarded once the estimate is generated.
    """

    # number of grid steps along each axis used to sample the surface
    grid_points = 1000

    def __init__(self):
        self.__values_1 = []
        self.__values_2 = []
        self.__weights = []
        self.__log_likes = []
        self.__fit = None

        self.min1 = self.max1 = None
        self.min2 = self.max2 = None
        self.scale_1 = self.scale_2 = None
        self.best_fit = None

    def add_point(self, x1: float, x2: float, weight: float, log_like: float = 0.0):
        self.add_points([x1], [x2], [weight], [log_like])

    def add_points(
        self, x1: ndarray, x2: ndarray, weights: ndarray, log_likes: ndarray = None
    ):
        """
        Add a set of weighted samples.

        :param x1: Sample values of the first parameter.
        :param x2: Sample values of the second parameter.
        :param weights: The (relative) probability weight of each sample.
        :param log_likes: \
            The likelihood value of each sample in the ``-2 ln L`` convention.
            Defaults to zero.
        """
        x1 = array(x1, dtype=float).flatten()
        columns = [x1, array(x2, dtype=float).flatten(), array(weights, dtype=float).flatten()]
        columns.append(
            zeros(x1.size) if log_likes is None else array(log_likes, dtype=float).flatten()
        )

        sizes = [c.size for c in columns]
        if len(set(sizes)) != 1:
            raise ValueError(
                f"""\n
                \r[ Posterior2D error ]
                \r>> All given sample arrays must have the same size,
                \r>> but instead have sizes {sizes}.
                """
            )

        for buffer, c in zip(self.__buffers(), columns):
            buffer.append(c)

    def __buffers(self):
        return self.__values_1, self.__values_2, self.__weights, self.__log_likes

    def generate(self, scale_1: float = 0.0, scale_2: float = 0.0, display=True):
        """
        Build the density estimate from the added samples.

        :param float scale_1: \
            Width of the smoothing kernel along the first axis. If zero, the width
            is set to one eighth of the interquartile range along that axis.

        :param float scale_2: \
            Width of the smoothing kernel along the second axis, treated in the
            same way as ``scale_1``.

        :param bool display: \
            If ``True``, progress of the surface sampling is written to stdout.
        """
        if len(self.__values_1) == 0:
            raise InsufficientDataError(
                """\n
                \r[ Posterior2D error ]
                \r>> No samples have been added since the estimate
                \r>> was last generated.
                """
            )

        x1, x2, weights, log_likes = [concatenate(b) for b in self.__buffers()]
        for v in (x1, x2):
            if v.size < 2 or not v.max() > v.min():
                raise InsufficientDataError(
                    """\n
                    \r[ Posterior2D error ]
                    \r>> At least 2 different values of each parameter need
                    \r>> to be added before generating the estimate.
                    """
                )

        if not weights.sum() > 0:
            raise InsufficientDataError(
                f"""\n
                \r[ Posterior2D error ]
                \r>> The total weight of the samples must be positive,
                \r>> but is {weights.sum()}.
                """
            )

        res_1, scale_1 = axis_resolution_and_scale(x1, weights, scale_1)
        res_2, scale_2 = axis_resolution_and_scale(x2, weights, scale_2)
        bins_1, bins_2, y = histogram_2d(x1, x2, weights, res_1, res_2)
        surface = GaussianSmoother2D(bins_1, bins_2, y, scale_1, scale_2)

        # sample the surface on a uniform grid
        printer = StatusPrinter(display=display)
        printer.message("Sampling the 2D distribution...")
        n = self.grid_points
        grid_1 = linspace(x1.min(), x1.max(), n + 1)
        grid_2 = linspace(x2.min(), x2.max(), n + 1)
        area = (grid_1[-1] - grid_1[0]) * (grid_2[-1] - grid_2[0]) / n**2

        k = 20  # evaluate the grid in k blocks of rows to track progress
        blocks = array_split(grid_1, k)
        t_start = time()
        density = []
        for j, block in enumerate(blocks):
            density.append(surface.evaluate_grid(block, grid_2).flatten())
            printer.percent_progress(t_start, j, k)
        printer.percent_final(t_start, (n + 1) ** 2)
        density = concatenate(density)

        normalization = density.sum() * area
        if not normalization > 0:
            raise InsufficientDataError(
                """\n
                \r[ Posterior2D error ]
                \r>> The normalisation of the smoothed 2D density is zero.
                """
            )

        self.__fit = FittedDensity(
            surface=surface,
            table=self.build_level_table(density / normalization, area),
            normalization=normalization,
        )

        self.min1, self.max1 = x1.min(), x1.max()
        self.min2, self.max2 = x2.min(), x2.max()
        self.scale_1, self.scale_2 = scale_1, scale_2
        best = log_likes.argmin()
        self.best_fit = (x1[best], x2[best])

        for buffer in self.__buffers():
            buffer.clear()

    @staticmethod
    def build_level_table(density: ndarray, area: float) -> InverseTable:
        """
        Build the table mapping the probability enclosed by a highest-density
        region to the density level at its boundary.

        :param density: Normalised density values sampled on a uniform grid.
        :param float area: The area of one grid cell.
        """
        levels = sort(density)[::-1]
        # probability enclosed before each level is added
        enclosed = zeros(levels.size)
        enclosed[1:] = (levels[:-1] * area).cumsum()
        inside = enclosed < 1.0
        keys = concatenate([enclosed[inside], [1.0]])
        return InverseTable(keys, concatenate([levels[inside], [0.0]]))

    @property
    def fitted(self) -> FittedDensity:
        if self.__fit is None:
            raise ValueError(
                """\n
                \r[ Posterior2D error ]
                \r>> The estimate has not been generated - call
                \r>> the 'generate' method first.
                """
            )
        return self.__fit

    @property
    def normalization(self) -> float:
        return self.fitted.normalization

    @property
    def level_table(self) -> tuple[ndarray, ndarray]:
        table = self.fitted.table
        return table.keys, table.values

    def evaluate(self, x1: ndarray, x2: ndarray) -> ndarray:
        """
        Evaluate the smoothed surface at the points ``(x1, x2)``. The returned
        values are not normalised.
        """
        return self.fitted.surface.evaluate(x1, x2)

    def __call__(self, x1: ndarray, x2: ndarray) -> ndarray:
        return self.evaluate(x1, x2)

    def level(self, probability):
        """
        Returns the normalised density level whose contour encloses the given
        fraction of the total probability. Compare against
        ``evaluate(x1, x2) / normalization`` when drawing contours.
        """
        p = atleast_1d(probability)
        if ((p < 0.0) | (p > 1.0)).any():
            raise ValueError(
                f"""\n
                \r[ Posterior2D error ]
                \r>> Probabilities must be between 0 and 1,
                \r>> but the value given was {probability}.
                """
            )
        return self.fitted.table(probability)

    def one_sigma_level(self) -> float:
        return self.level(ONE_SIGMA)

    def two_sigma_level(self) -> float:
        return self.level(TWO_SIGMA)

    def write_to_file(self, filename: str, n: int):
        """
        Write the estimate evaluated on an ``(n + 1) x (n + 1)`` uniform grid.
        The first line holds the grid positions along the first axis, the second
        line those along the second axis, and each following line holds the
        values for one position along the first axis.
        """
        if n < 2:
            raise ValueError(
                f"""\n
                \r[ Posterior2D error ]
                \r>> Invalid number of points {n}, should be at least 2.
                """
            )
        x1 = linspace(self.min1, self.max1, n + 1)
        x2 = linspace(self.min2, self.max2, n + 1)
        values = self.fitted.surface.evaluate_grid(x1, x2)
        with open(filename, "w") as f:
            savetxt(f, x1[None, :], delimiter=" ", fmt="%.10g")
            savetxt(f, x2[None, :], delimiter=" ", fmt="%.10g")
            savetxt(f, values, delimiter=" ", fmt="%.10g")
