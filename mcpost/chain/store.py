from numpy import ndarray, array, zeros, lexsort, searchsorted
from mcpost.pdf import Posterior1D, Posterior2D


def descending_weight_order(weights: ndarray, log_likes: ndarray) -> ndarray:
    """
    Indices which sort samples by decreasing weight. Samples of equal weight
    are ordered by increasing likelihood value (better fits first), and any
    remaining ties keep their original order.
    """
    return lexsort((log_likes, -weights))


class WeightedChain:
    """
    Stores the weighted samples of one or more Markov chains, sorted so that
    the samples with the highest weight come first.

    :param weights: \
        The (relative) probability weight of each sample as a 1D array.

    :param log_likes: \
        The likelihood value of each sample, in the ``-2 ln L`` convention
        used by the chain files, as a 1D array.

    :param params: \
        The parameter values of each sample as a 2D array of shape
        ``(n_samples, n_parameters)``.

    :param err_mean: \
        Mean of the likelihood error estimate of each sample. Defaults to zero.

    :param err_var: \
        Variance of the likelihood error estimate of each sample. Defaults to zero.

    :param float min_log_like: \
        The smallest likelihood value seen while reading the chain, which may
        belong to a sample that was later discarded. Defaults to the smallest
        value among the given samples.
    """

    def __init__(
        self,
        weights: ndarray,
        log_likes: ndarray,
        params: ndarray,
        err_mean: ndarray = None,
        err_var: ndarray = None,
        min_log_like: float = None,
    ):
        weights = array(weights, dtype=float)
        log_likes = array(log_likes, dtype=float)
        params = array(params, dtype=float)
        n = weights.size
        err_mean = zeros(n) if err_mean is None else array(err_mean, dtype=float)
        err_var = zeros(n) if err_var is None else array(err_var, dtype=float)

        if params.ndim != 2 or params.shape[0] != n:
            raise ValueError(
                f"""\n
                \r[ WeightedChain error ]
                \r>> The 'params' argument must be a 2D array with one row per
                \r>> sample ({n} rows), but instead has shape {params.shape}.
                """
            )

        if not (log_likes.size == err_mean.size == err_var.size == n):
            raise ValueError(
                f"""\n
                \r[ WeightedChain error ]
                \r>> The 'weights', 'log_likes', 'err_mean' and 'err_var' arguments
                \r>> must have equal sizes, but have sizes {n}, {log_likes.size},
                \r>> {err_mean.size} and {err_var.size}.
                """
            )

        order = descending_weight_order(weights, log_likes)
        self.weights = weights[order]
        self.log_likes = log_likes[order]
        self.params = params[order, :]
        self.err_mean = err_mean[order]
        self.err_var = err_var[order]
        self.n_parameters = self.params.shape[1]

        if min_log_like is None and n > 0:
            min_log_like = self.log_likes.min()
        self.min_log_like = min_log_like

    def __len__(self) -> int:
        return self.weights.size

    @property
    def chain_length(self) -> int:
        return self.weights.size

    def __check_index(self, index: int):
        if not 0 <= index < self.n_parameters:
            raise ValueError(
                f"""\n
                \r[ WeightedChain error ]
                \r>> Invalid parameter index {index} - the chain has
                \r>> {self.n_parameters} parameters.
                """
            )

    def get_parameter(self, index: int) -> ndarray:
        """
        Return the values of a chosen parameter for every sample in the chain.

        :param int index: Index of the parameter.
        """
        self.__check_index(index)
        return self.params[:, index].copy()

    def subset(self, indices) -> "WeightedChain":
        return WeightedChain(
            weights=self.weights[indices],
            log_likes=self.log_likes[indices],
            params=self.params[indices, :],
            err_mean=self.err_mean[indices],
            err_var=self.err_var[indices],
            min_log_like=self.min_log_like,
        )

    def credible_region(self, p_upper: float, p_lower: float = 0.0) -> "WeightedChain":
        """
        Return the samples which make up a chosen band of the total probability,
        with the samples accumulated in order of decreasing weight.

        Walking through the samples from the highest weight to the lowest, a
        sample is selected if the cumulative weight before it is less than
        ``p_upper`` and the cumulative weight including it is greater than
        ``p_lower``, with both cumulative weights expressed as a fraction of the
        total weight of the chain. For example, ``credible_region(0.95)`` returns
        the highest-weight samples which together hold 95% of the probability.

        :param float p_upper: Upper edge of the probability band.
        :param float p_lower: Lower edge of the probability band.

        :return: A new ``WeightedChain`` containing the selected samples.
        """
        if not 0.0 <= p_upper <= 1.0:
            raise ValueError(
                f"""\n
                \r[ WeightedChain error ]
                \r>> Invalid probability {p_upper}, should be between 0 and 1.
                """
            )

        if not 0.0 <= p_lower <= p_upper:
            raise ValueError(
                f"""\n
                \r[ WeightedChain error ]
                \r>> Invalid lower probability {p_lower}, should be
                \r>> between 0 and {p_upper}.
                """
            )

        if p_upper == 0.0 or len(self) == 0:
            return self.subset(slice(0, 0))

        if p_lower == 1.0:
            return self.subset(slice(None))

        cumulative = self.weights.cumsum()
        total = cumulative[-1]
        start = searchsorted(cumulative, p_lower * total, side="right")
        stop = min(searchsorted(cumulative, p_upper * total, side="left") + 1, len(self))
        return self.subset(slice(start, stop))

    def get_marginal(
        self, index: int, method: str = "gaussian", scale: float = 0.0
    ) -> Posterior1D:
        """
        Estimate the 1D marginal distribution of a chosen parameter.

        :param int index: \
            Index of the parameter for which the marginal distribution is to be estimated.

        :param str method: \
            The smoothing method, either ``"gaussian"`` or ``"spline"``.

        :param float scale: \
            Width of the Gaussian smoothing kernel. If zero, the width is
            estimated from the sample.

        :return: The generated ``Posterior1D`` estimate.
        """
        self.__check_index(index)
        posterior = Posterior1D()
        posterior.add_points(
            self.params[:, index],
            self.weights,
            self.log_likes,
            self.err_mean,
            self.err_var,
        )
        posterior.generate(method=method, scale=scale)
        return posterior

    def get_joint_marginal(
        self,
        index_1: int,
        index_2: int,
        scale_1: float = 0.0,
        scale_2: float = 0.0,
        display: bool = True,
    ) -> Posterior2D:
        """
        Estimate the 2D joint marginal distribution of two chosen parameters.

        :param int index_1: Index of the first parameter.
        :param int index_2: Index of the second parameter.
        :param float scale_1: Smoothing width along the first axis, zero for automatic.
        :param float scale_2: Smoothing width along the second axis, zero for automatic.
        :param bool display: Whether to print progress while sampling the estimate.

        :return: The generated ``Posterior2D`` estimate.
        """
        self.__check_index(index_1)
        self.__check_index(index_2)
        posterior = Posterior2D()
        posterior.add_points(
            self.params[:, index_1],
            self.params[:, index_2],
            self.weights,
            self.log_likes,
        )
        posterior.generate(scale_1=scale_1, scale_2=scale_2, display=display)
        return posterior
