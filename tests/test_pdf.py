from mcpost.pdf import (
    InverseTable,
    GaussianSmoother,
    SplineSmoother,
    GaussianSmoother2D,
    Posterior1D,
    Posterior2D,
    ONE_SIGMA,
    TWO_SIGMA,
)
from mcpost.pdf.binning import (
    weighted_interquartile_range,
    freedman_diaconis_resolution,
    automatic_scale,
    bin_positions,
    histogram_1d,
    histogram_2d,
)
from mcpost.exceptions import InsufficientDataError

from numpy.random import default_rng
from numpy import array, arange, linspace, zeros, ones, full, diff, loadtxt
from numpy import isclose, allclose
from scipy.integrate import simpson

import pytest
from hypothesis import given, strategies as st


@pytest.fixture(scope="module")
def normal_posterior():
    samples = default_rng(13).normal(loc=5.0, scale=2.0, size=20000)
    pdf = Posterior1D()
    pdf.add_points(samples, ones(samples.size))
    pdf.generate()
    return pdf


@pytest.fixture(scope="module")
def joint_posterior():
    rng = default_rng(29)
    n = 20000
    x1 = rng.normal(loc=0.0, scale=1.0, size=n)
    x2 = rng.normal(loc=2.0, scale=0.5, size=n)
    pdf = Posterior2D()
    pdf.add_points(x1, x2, ones(n), (x1**2) + ((x2 - 2.0) / 0.5) ** 2)
    pdf.generate(display=False)
    return pdf


def test_inverse_table_keeps_last_duplicate():
    table = InverseTable([0.0, 0.5, 0.5, 1.0], [0.0, 1.0, 2.0, 3.0])
    assert (table.keys == array([0.0, 0.5, 1.0])).all()
    assert table(0.5) == 2.0
    assert isclose(table(0.25), 1.0)
    assert allclose(table([0.0, 0.75, 1.0]), [0.0, 2.5, 3.0])


def test_inverse_table_invalid_keys():
    with pytest.raises(ValueError):
        InverseTable([0.0, 1.0, 0.5], [0.0, 1.0, 2.0])
    with pytest.raises(ValueError):
        InverseTable([0.0, 1.0], [0.0])
    with pytest.raises(ValueError):
        InverseTable([], [])


@given(st.lists(st.integers(min_value=0, max_value=20), min_size=1, max_size=50))
def test_inverse_table_lookups(steps):
    keys = sorted(s / 20 for s in steps)
    values = arange(len(keys), dtype=float)
    table = InverseTable(keys, values)
    for k in set(keys):
        last = max(i for i, key in enumerate(keys) if key == k)
        assert table(k) == values[last]


def test_weighted_interquartile_range():
    values = arange(100.0)
    assert weighted_interquartile_range(values, ones(100)) == 50.0
    # moving weight onto the upper half shifts both quartiles upwards
    weights = ones(100)
    weights[50:] = 3.0
    assert weighted_interquartile_range(values, weights) == 34.0


def test_freedman_diaconis_resolution():
    # fewer than 5 points, or a zero bin width, gives a single bin
    assert freedman_diaconis_resolution(1.0, 4, 0.0, 10.0) == 1
    assert freedman_diaconis_resolution(0.0, 100, 0.0, 10.0) == 1
    # width = 2 * 1 / 1000**(1/3) = 0.2
    assert freedman_diaconis_resolution(1.0, 1000, 0.0, 10.0) in (49, 50)


def test_freedman_diaconis_too_few_bins():
    values = array([0.0, 0.0, 1.0, 1.0, 1.0])
    iqr = weighted_interquartile_range(values, ones(5))
    assert iqr == 1.0
    with pytest.raises(ValueError):
        freedman_diaconis_resolution(iqr, values.size, 0.0, 1.0)

    pdf = Posterior1D()
    pdf.add_points(values, ones(5))
    with pytest.raises(ValueError):
        pdf.generate()


def test_automatic_scale():
    assert automatic_scale(4.0) == 0.5
    with pytest.raises(InsufficientDataError):
        automatic_scale(0.0)


def test_bin_positions():
    assert allclose(bin_positions(0.0, 1.0, 4), [0.0, 0.125, 0.375, 0.625, 0.875, 1.0])


def test_histogram_1d():
    values = array([0.0, 0.1, 0.6, 1.0])
    weights = array([1.0, 2.0, 3.0, 4.0])
    x, y, errors = histogram_1d(values, weights, zeros(4), resolution=2)
    assert allclose(x, [0.0, 0.25, 0.75, 1.0])
    # the upper edge falls into the last interior bin
    assert allclose(y, [3.0, 3.0, 7.0, 7.0])
    assert (errors == 0.0).all()

    x, y, errors = histogram_1d(values, weights, full(4, 4.0), resolution=2)
    # the variance of ln L in each bin is sum(w * err_var / 4), giving 3 and 7,
    # and the standard error is rescaled by sqrt(total weight / n) = sqrt(2.5)
    assert allclose(errors, [0.0, (3.0 * 2.5) ** 0.5, (7.0 * 2.5) ** 0.5, 0.0])

    x, y, errors = histogram_1d(values, weights, array([4.0, 0.0, 8.0, 0.0]), resolution=2)
    assert allclose(errors, [0.0, 2.5**0.5, (6.0 * 2.5) ** 0.5, 0.0])


def test_histogram_2d():
    x1, x2, y = histogram_2d(
        array([0.0, 1.0, 0.2]), array([0.0, 1.0, 0.9]), array([1.0, 2.0, 5.0]), 2, 2
    )
    assert y.shape == (4, 4)
    assert allclose(x1, [0.0, 0.25, 0.75, 1.0])
    assert y[1, 1] == 1.0
    assert y[1, 2] == 5.0
    assert y[2, 2] == 2.0
    # boundary rows and columns mirror their neighbours
    assert (y[0, :] == y[1, :]).all()
    assert (y[:, -1] == y[:, -2]).all()
    assert y.sum() == 32.0


def test_gaussian_smoother():
    x = linspace(0, 10, 21)
    smoother = GaussianSmoother(x, full(21, 3.0), scale=0.5, errors=full(21, 0.2))
    assert allclose(smoother.evaluate(linspace(-1, 11, 50)), 3.0)
    assert isclose(smoother(4.3), 3.0)

    err = smoother.evaluate_error(linspace(0, 10, 7))
    assert ((err > 0.0) & (err <= 0.2)).all()
    # far from the data the average is dominated by the nearest bin
    assert isclose(smoother.evaluate_error(1000.0), 0.2)

    assert (GaussianSmoother(x, x, scale=1.0).evaluate_error(x) == 0.0).all()

    # midway between two bins the kernel weights are equal
    pair = GaussianSmoother([0.0, 1.0], [1.0, 3.0], scale=1.0, errors=[0.3, 0.4])
    assert isclose(pair(0.5), 2.0)
    assert isclose(pair.evaluate_error(0.5), 0.25)

    with pytest.raises(ValueError):
        GaussianSmoother(x, x, scale=0.0)
    with pytest.raises(ValueError):
        GaussianSmoother(x, x[:-1], scale=1.0)


def test_spline_smoother():
    x = linspace(0, 1, 11)
    y = x**2
    smoother = SplineSmoother(x, y)
    assert allclose(smoother(x), y)
    assert smoother.evaluate_error(0.5) == 0.0
    assert (smoother.evaluate_error(x) == 0.0).all()


def test_gaussian_smoother_2d():
    rng = default_rng(5)
    x1 = linspace(0, 1, 8)
    x2 = linspace(-1, 1, 6)
    y = rng.random(size=[8, 6])
    smoother = GaussianSmoother2D(x1, x2, y, 0.2, 0.3)

    p1 = linspace(-0.2, 1.2, 9)
    p2 = linspace(-1.5, 1.5, 7)
    grid = smoother.evaluate_grid(p1, p2)
    assert grid.shape == (9, 7)
    assert isclose(smoother(p1[3], p2[5]), grid[3, 5])
    assert allclose(smoother(p1, full(9, p2[2])), grid[:, 2])
    assert (grid > y.min() - 1e-12).all() and (grid < y.max() + 1e-12).all()

    constant = GaussianSmoother2D(x1, x2, full([8, 6], 2.0), 0.1, 0.1)
    assert allclose(constant.evaluate_grid(p1, p2), 2.0)

    with pytest.raises(ValueError):
        GaussianSmoother2D(x1, x2, y.T, 0.2, 0.3)
    with pytest.raises(ValueError):
        GaussianSmoother2D(x1, x2, y, 0.2, -0.3)


def test_posterior_1d_median_and_interval(normal_posterior):
    assert isclose(normal_posterior.median(), 5.0, atol=0.05)

    left, right = normal_posterior.one_sigma_two_sided()
    assert isclose(left, 3.0, atol=0.2)
    assert isclose(right, 7.0, atol=0.2)

    left, right = normal_posterior.two_sigma_two_sided()
    assert isclose(left, 1.0, atol=0.3)
    assert isclose(right, 9.0, atol=0.3)

    assert normal_posterior.upper_limit(0.5) == normal_posterior.median()
    assert isclose(normal_posterior.lower_limit(0.9), normal_posterior.quantile(0.1))

    with pytest.raises(ValueError):
        normal_posterior.credible_interval(1.0)
    with pytest.raises(ValueError):
        normal_posterior.credible_interval(0.0)


def test_posterior_1d_quantile_limits(normal_posterior):
    assert normal_posterior.quantile(0.0) == normal_posterior.min
    assert normal_posterior.quantile(1.0) == normal_posterior.max
    with pytest.raises(ValueError):
        normal_posterior.quantile(1.01)
    with pytest.raises(ValueError):
        normal_posterior.quantile([0.2, -0.5])


@given(
    st.floats(min_value=0.0, max_value=1.0),
    st.floats(min_value=0.0, max_value=1.0),
)
def test_posterior_1d_quantile_monotone(normal_posterior, p1, p2):
    lower, upper = sorted([p1, p2])
    assert normal_posterior.quantile(lower) <= normal_posterior.quantile(upper)


def test_posterior_1d_normalization(normal_posterior):
    x = linspace(normal_posterior.min, normal_posterior.max, 20001)
    integral = simpson(normal_posterior.evaluate(x), x=x)
    assert isclose(normal_posterior.normalization, integral, rtol=1e-3)


def test_posterior_1d_peak_and_mean(normal_posterior):
    assert isclose(normal_posterior.peak(), 5.0, atol=0.5)
    # the maximum found while integrating agrees with the peak search
    location, value = normal_posterior.grid_peak
    assert isclose(location, normal_posterior.peak(), atol=0.01)
    assert isclose(value, normal_posterior.evaluate(location))
    assert isclose(normal_posterior.mean, 5.0, atol=0.05)
    assert normal_posterior.method == "gaussian"
    assert normal_posterior.scale > 0.0
    assert normal_posterior.resolution > 1


def test_posterior_1d_errors():
    rng = default_rng(17)
    samples = rng.normal(size=5000)
    x = linspace(-2, 2, 9)

    pdf = Posterior1D()
    pdf.add_points(samples, ones(5000))
    pdf.generate()
    assert (pdf.evaluate_error(x) == 0.0).all()

    pdf.add_points(samples, ones(5000), err_vars=full(5000, 0.5))
    pdf.generate()
    assert (pdf.evaluate_error(x) > 0.0).all()

    pdf.add_points(samples, ones(5000), err_vars=full(5000, 0.5))
    pdf.generate(method="spline")
    assert (pdf.evaluate_error(x) == 0.0).all()


def test_posterior_1d_error_propagation():
    rng = default_rng(23)
    n = 4000
    values = rng.normal(size=n)
    weights = rng.integers(1, 5, size=n).astype(float)
    err_vars = rng.uniform(0.1, 1.0, size=n)

    pdf = Posterior1D()
    pdf.add_points(values, weights, err_vars=err_vars)
    pdf.generate()
    fit = pdf.fitted

    _, _, errors = histogram_1d(values, weights, err_vars, pdf.resolution)
    assert allclose(fit.surface.errors, errors)
    total = weights.sum()
    assert isclose(fit.error_scale, (errors**2).sum() ** 0.5 / total * fit.normalization)

    x = linspace(-2, 2, 9)
    a = fit.surface.evaluate(x)
    da = fit.surface.evaluate_error(x)
    norm = fit.normalization
    expected = a / norm * ((da / a) ** 2 + (fit.error_scale / norm) ** 2) ** 0.5
    assert allclose(pdf.evaluate_error(x), expected)


def test_posterior_1d_best_fit():
    pdf = Posterior1D()
    pdf.add_points(
        x=linspace(0, 1, 50), weights=ones(50), log_likes=(linspace(0, 1, 50) - 0.3) ** 2
    )
    pdf.add_point(2.0, 1.0, log_like=5.0)
    pdf.generate(scale=0.1)
    assert isclose(pdf.best_fit, linspace(0, 1, 50)[15])
    assert pdf.max == 2.0
    assert isclose(pdf.mean, (linspace(0, 1, 50).sum() + 2.0) / 51)


def test_posterior_1d_insufficient_data():
    pdf = Posterior1D()
    with pytest.raises(InsufficientDataError):
        pdf.generate()

    pdf.add_point(1.0, 1.0)
    with pytest.raises(InsufficientDataError):
        pdf.generate()

    pdf = Posterior1D()
    pdf.add_points(full(10, 2.0), ones(10))
    with pytest.raises(InsufficientDataError):
        pdf.generate()

    pdf = Posterior1D()
    pdf.add_points(linspace(0, 1, 10), zeros(10))
    with pytest.raises(InsufficientDataError):
        pdf.generate()


def test_posterior_1d_zero_interquartile_range():
    values = zeros(101)
    values[-1] = 1.0

    pdf = Posterior1D()
    pdf.add_points(values, ones(101))
    with pytest.raises(InsufficientDataError):
        pdf.generate()

    # the samples are kept after a failed generation, and an explicit
    # smoothing scale does not need the interquartile range
    pdf.generate(scale=0.1)
    assert pdf.resolution == 1


def test_posterior_1d_invalid_arguments():
    pdf = Posterior1D()
    with pytest.raises(ValueError):
        pdf.add_points([1.0, 2.0], [1.0])

    pdf.add_points(linspace(0, 1, 100), ones(100))
    with pytest.raises(ValueError):
        pdf.generate(method="histogram")
    with pytest.raises(ValueError):
        pdf.generate(scale=-1.0)

    # nothing can be evaluated before the estimate is generated
    with pytest.raises(ValueError):
        pdf.median()
    with pytest.raises(ValueError):
        pdf.evaluate(0.5)


def test_posterior_1d_regenerate():
    rng = default_rng(3)
    pdf = Posterior1D()
    pdf.add_points(rng.normal(size=2000), ones(2000))
    pdf.generate()
    first = pdf.fitted

    pdf.add_points(rng.normal(loc=10.0, size=2000), ones(2000))
    pdf.generate()
    assert pdf.fitted is not first
    assert isclose(pdf.median(), 10.0, atol=0.2)
    assert pdf.min > 5.0

    # the samples are discarded after each generation
    with pytest.raises(InsufficientDataError):
        pdf.generate()
    assert isclose(pdf.median(), 10.0, atol=0.2)


def test_posterior_1d_write_to_file(normal_posterior, tmp_path):
    filename = tmp_path / "marginal.txt"
    normal_posterior.write_to_file(filename, 100)
    data = loadtxt(filename, delimiter="\t")
    assert data.shape == (101, 2)
    assert allclose(data[:, 0], linspace(normal_posterior.min, normal_posterior.max, 101))
    assert allclose(data[:, 1], normal_posterior(data[:, 0]), rtol=1e-8)

    normal_posterior.write_to_file(filename, 10, include_error=True)
    assert loadtxt(filename, delimiter="\t").shape == (11, 3)

    with pytest.raises(ValueError):
        normal_posterior.write_to_file(filename, 1)


def test_posterior_2d_level_table(joint_posterior):
    keys, values = joint_posterior.level_table
    assert keys[0] == 0.0
    assert keys[-1] == 1.0
    assert values[-1] == 0.0
    assert (diff(keys) > 0.0).all()
    assert (diff(values) <= 0.0).all()
    assert joint_posterior.level(0.0) == values[0]
    assert joint_posterior.level(1.0) == 0.0


def test_posterior_2d_sigma_levels(joint_posterior):
    one_sigma = joint_posterior.one_sigma_level()
    two_sigma = joint_posterior.two_sigma_level()
    assert one_sigma > two_sigma > 0.0

    # for a 2D gaussian the region holding a fraction f of the probability
    # is bounded by the density level (1 - f) * peak
    keys, values = joint_posterior.level_table
    assert isclose(one_sigma / values[0], 1.0 - ONE_SIGMA, atol=0.05)
    assert isclose(two_sigma / values[0], 1.0 - TWO_SIGMA, atol=0.02)

    with pytest.raises(ValueError):
        joint_posterior.level(1.5)


def test_posterior_2d_enclosed_probability(joint_posterior):
    n = Posterior2D.grid_points
    x1 = linspace(joint_posterior.min1, joint_posterior.max1, n + 1)
    x2 = linspace(joint_posterior.min2, joint_posterior.max2, n + 1)
    area = (x1[-1] - x1[0]) * (x2[-1] - x2[0]) / n**2
    density = joint_posterior.fitted.surface.evaluate_grid(x1, x2)
    density /= joint_posterior.normalization
    assert isclose(density.sum() * area, 1.0)

    for fraction in (0.5, ONE_SIGMA, TWO_SIGMA):
        inside = density >= joint_posterior.level(fraction)
        assert isclose(density[inside].sum() * area, fraction, atol=1e-3)


def test_posterior_2d_evaluate(joint_posterior):
    value = joint_posterior(0.0, 2.0)
    assert value == joint_posterior.evaluate(array([0.0]), array([2.0]))
    assert value > joint_posterior(2.0, 2.0) > 0.0
    assert isclose(joint_posterior.best_fit[0], 0.0, atol=0.1)
    assert isclose(joint_posterior.best_fit[1], 2.0, atol=0.1)
    assert joint_posterior.scale_1 > joint_posterior.scale_2 > 0.0


def test_posterior_2d_write_to_file(joint_posterior, tmp_path):
    filename = tmp_path / "joint.txt"
    joint_posterior.write_to_file(filename, 20)
    with open(filename) as f:
        lines = [line.split() for line in f]
    assert len(lines) == 23
    assert all(len(line) == 21 for line in lines)
    x1 = array(lines[0], dtype=float)
    x2 = array(lines[1], dtype=float)
    assert allclose(x1, linspace(joint_posterior.min1, joint_posterior.max1, 21))
    assert isclose(float(lines[5][7]), joint_posterior(x1[3], x2[7]), rtol=1e-8)


def test_posterior_2d_status_output(capsys):
    rng = default_rng(8)
    pdf = Posterior2D()
    pdf.add_points(rng.normal(size=500), rng.normal(size=500), ones(500))
    pdf.generate(display=True)
    output = capsys.readouterr().out
    assert "Sampling the 2D distribution..." in output
    assert "complete" in output


def test_posterior_2d_insufficient_data():
    pdf = Posterior2D()
    with pytest.raises(InsufficientDataError):
        pdf.generate(display=False)

    pdf.add_points(linspace(0, 1, 10), full(10, 3.0), ones(10))
    with pytest.raises(InsufficientDataError):
        pdf.generate(display=False)

    pdf = Posterior2D()
    pdf.add_points(linspace(0, 1, 10), linspace(0, 1, 10), zeros(10))
    with pytest.raises(InsufficientDataError):
        pdf.generate(display=False)

    with pytest.raises(ValueError):
        pdf.level(0.5)
    with pytest.raises(ValueError):
        Posterior2D().add_points([0.0, 1.0], [0.0], [1.0, 1.0])
