from numpy import ndarray, zeros, sqrt, floor, bincount, linspace, searchsorted
from mcpost.exceptions import InsufficientDataError


def weighted_interquartile_range(values: ndarray, weights: ndarray) -> float:
    """
    Estimate the interquartile range of a weighted sample. The quartiles are
    taken as the first sorted values at which the cumulative weight reaches
    25% and 75% of the total weight.
    """
    sorter = values.argsort(kind="stable")
    cumulative = weights[sorter].cumsum()
    total = cumulative[-1]
    q1, q3 = searchsorted(cumulative, [0.25 * total, 0.75 * total], side="left")
    q3 = min(q3, values.size - 1)
    return values[sorter[q3]] - values[sorter[min(q1, q3)]]


def freedman_diaconis_resolution(
    iqr: float, n_points: int, lower: float, upper: float
) -> int:
    """
    Number of histogram bins spanning ``[lower, upper]`` given by the
    Freedman-Diaconis bin-width rule.
    """
    bin_width = 2 * iqr * n_points ** (-1.0 / 3.0)
    if bin_width == 0 or n_points < 5:
        resolution = 1
    else:
        resolution = int(floor((upper - lower) / bin_width))

    if resolution <= 0:
        raise ValueError(
            f"""\n
            \r[ freedman_diaconis_resolution error ]
            \r>> The estimated number of histogram bins must be positive, but
            \r>> a value of {resolution} was obtained from {n_points} points with
            \r>> an interquartile range of {iqr} over the range [{lower}, {upper}].
            """
        )
    return resolution


def automatic_scale(iqr: float) -> float:
    if iqr <= 0:
        raise InsufficientDataError(
            """\n
            \r[ automatic_scale error ]
            \r>> Cannot determine the smoothing scale because the
            \r>> interquartile range of the sample is zero.
            """
        )
    return iqr / 8


def axis_resolution_and_scale(
    values: ndarray, weights: ndarray, scale: float
) -> tuple[int, float]:
    """
    Returns the number of interior histogram bins and the smoothing scale for
    one axis. A ``scale`` of zero requests an automatic estimate.
    """
    if scale < 0:
        raise ValueError(
            f"""\n
            \r[ axis_resolution_and_scale error ]
            \r>> The smoothing scale must be non-negative, but the
            \r>> value given was {scale}.
            """
        )
    iqr = weighted_interquartile_range(values, weights)
    resolution = freedman_diaconis_resolution(
        iqr, values.size, values.min(), values.max()
    )
    if scale == 0:
        scale = automatic_scale(iqr)
    return resolution, scale


def bin_positions(lower: float, upper: float, resolution: int) -> ndarray:
    """
    Positions of ``resolution`` interior bin centres, plus two boundary bins
    pinned to ``lower`` and ``upper``.
    """
    d = (upper - lower) / resolution
    x = zeros(resolution + 2)
    x[0] = lower
    x[-1] = upper
    x[1:-1] = lower + d * linspace(0, resolution - 1, resolution) + 0.5 * d
    return x


def bin_indices(values: ndarray, lower: float, upper: float, resolution: int):
    # index of the bin containing each value, offset by one for the boundary bin
    d = (upper - lower) / resolution
    k = floor((values - lower) / d).astype(int)
    k[k >= resolution] = resolution - 1
    return k + 1


def histogram_1d(
    values: ndarray,
    weights: ndarray,
    err_var: ndarray,
    resolution: int,
) -> tuple[ndarray, ndarray, ndarray]:
    """
    Build a weighted histogram together with the standard error of each bin.

    :param values: Sample values.
    :param weights: Sample weights.
    :param err_var: \
        Variance of the likelihood error estimate attached to each sample,
        given for ``-2 ln L``.
    :param resolution: Number of interior bins.

    :return: \
        The bin positions, the bin contents and the per-bin standard errors,
        each of length ``resolution + 2``. The boundary bins copy the contents
        of their interior neighbours.
    """
    lower, upper = values.min(), values.max()
    x = bin_positions(lower, upper, resolution)
    k = bin_indices(values, lower, upper, resolution)
    y = bincount(k, weights=weights, minlength=resolution + 2)
    # the variance is given for -2 ln L, so divide by 4 to get it for ln L
    variances = bincount(k, weights=weights * err_var / 4, minlength=resolution + 2)

    # re-weigh so that each point has a weight of 1 on average
    errors = zeros(resolution + 2)
    filled = y != 0
    errors[filled] = sqrt(variances[filled]) / sqrt(values.size / weights.sum())

    y[0] = y[1]
    y[-1] = y[-2]
    return x, y, errors


def histogram_2d(
    values_1: ndarray,
    values_2: ndarray,
    weights: ndarray,
    resolution_1: int,
    resolution_2: int,
) -> tuple[ndarray, ndarray, ndarray]:
    """
    Build a weighted 2D histogram of shape ``(resolution_1 + 2, resolution_2 + 2)``
    whose boundary rows and columns mirror their interior neighbours.
    """
    lwr_1, upr_1 = values_1.min(), values_1.max()
    lwr_2, upr_2 = values_2.min(), values_2.max()
    x1 = bin_positions(lwr_1, upr_1, resolution_1)
    x2 = bin_positions(lwr_2, upr_2, resolution_2)
    k1 = bin_indices(values_1, lwr_1, upr_1, resolution_1)
    k2 = bin_indices(values_2, lwr_2, upr_2, resolution_2)

    n1, n2 = resolution_1 + 2, resolution_2 + 2
    y = bincount(k1 * n2 + k2, weights=weights, minlength=n1 * n2).reshape([n1, n2])

    y[:, 0] = y[:, 1]
    y[:, -1] = y[:, -2]
    y[0, :] = y[1, :]
    y[-1, :] = y[-2, :]
    return x1, x2, y
