from dataclasses import dataclass
from numpy import ndarray, array, zeros, concatenate, inf
from mcpost.chain.error_log import ErrorLog, numbered_filenames
from mcpost.chain.store import WeightedChain
from mcpost.exceptions import MalformedInputError, InsufficientDataError
from mcpost.utilities import StatusPrinter

# samples with weight below max_weight / (n_samples * NEGLIGIBLE_WEIGHT_FACTOR)
# are discarded when chains are loaded
NEGLIGIBLE_WEIGHT_FACTOR = 1000


@dataclass
class ChainFileContents:
    """
    The samples read from one chain file which survived burn-in removal and
    thinning, along with statistics gathered over every line of the file.
    """

    filename: str
    weights: ndarray
    log_likes: ndarray
    params: ndarray
    max_weight: float
    min_log_like: float
    n_lines: int

    @property
    def n_parameters(self) -> int:
        return self.params.shape[1]


def chain_filenames(root: str, n_chains: int) -> list[str]:
    """
    Names of the files written for a run of ``n_chains`` chains with the given
    root name: ``root.txt`` for a single chain, otherwise ``root_0.txt``,
    ``root_1.txt`` and so on.
    """
    return numbered_filenames(root, n_chains)


def read_chain_file(
    filename: str, burn: int = 0, thin: int = 1, display: bool = True
) -> ChainFileContents:
    """
    Read the samples from a chain file.

    Each line of the file holds the weight of a sample, its likelihood value
    and then its parameter values, separated by whitespace. Reading stops at the
    first blank line. Every line must have the same number of parameters.

    :param str filename: Path of the chain file.
    :param int burn: Number of lines to discard from the start of the chain.
    :param int thin: \
        Only every ``thin``'th line after the burn-in is kept, starting
        with the first.
    :param bool display: Whether to print status messages.
    """
    if thin < 1:
        raise ValueError(
            f"""\n
            \r[ read_chain_file error ]
            \r>> The thin factor must be at least 1, but the value
            \r>> given was {thin}.
            """
        )

    if burn < 0:
        raise ValueError(
            f"""\n
            \r[ read_chain_file error ]
            \r>> The number of burn-in samples must be non-negative,
            \r>> but the value given was {burn}.
            """
        )

    printer = StatusPrinter(display=display)
    printer.message(f"Reading the chain from file {filename}...")

    rows = []
    n_params = None
    max_weight = -inf
    min_log_like = inf
    line_number = 0
    with open(filename) as f:
        for line in f:
            fields = line.split()
            if len(fields) == 0:
                break

            try:
                values = [float(v) for v in fields]
            except ValueError as err:
                raise MalformedInputError(
                    f"""\n
                    \r[ read_chain_file error ]
                    \r>> Invalid chain file {filename}. Line {line_number}
                    \r>> contains a non-numeric field: {err}
                    """
                ) from err

            if len(values) < 3:
                raise MalformedInputError(
                    f"""\n
                    \r[ read_chain_file error ]
                    \r>> Invalid chain file {filename}. Line {line_number} has
                    \r>> {len(values)} fields, but at least 3 are required.
                    """
                )

            if n_params is None:
                n_params = len(values) - 2
            elif n_params != len(values) - 2:
                raise MalformedInputError(
                    f"""\n
                    \r[ read_chain_file error ]
                    \r>> Invalid chain file {filename}. There are {len(values) - 2}
                    \r>> parameters on line {line_number} while the previous lines
                    \r>> had {n_params} parameters.
                    """
                )

            max_weight = max(max_weight, values[0])
            min_log_like = min(min_log_like, values[1])

            if line_number >= burn and (line_number - burn) % thin == 0:
                rows.append(values)
            line_number += 1

    table = array(rows) if rows else zeros([0, 2 + (n_params or 0)])
    printer.message(
        f"Successfully read the chain. It has {table.shape[0]} elements, {n_params} parameters."
    )
    return ChainFileContents(
        filename=filename,
        weights=table[:, 0],
        log_likes=table[:, 1],
        params=table[:, 2:],
        max_weight=max_weight,
        min_log_like=min_log_like,
        n_lines=line_number,
    )


def merge_chain_files(
    contents: list[ChainFileContents],
    error_log: ErrorLog = None,
    display: bool = True,
) -> WeightedChain:
    """
    Combine the samples read from one or more chain files into a single
    ``WeightedChain``.

    Samples whose weight is negligible compared with the largest weight found
    in any of the files are discarded, then any matching likelihood error
    estimates are attached from the given error log.
    """
    if len(contents) == 0:
        raise ValueError(
            """\n
            \r[ merge_chain_files error ]
            \r>> At least one chain is required.
            """
        )

    widths = {c.n_parameters for c in contents if c.n_lines > 0}
    if len(widths) > 1:
        names = ", ".join(c.filename for c in contents)
        raise MalformedInputError(
            f"""\n
            \r[ merge_chain_files error ]
            \r>> The chain files {names} do not agree
            \r>> on the number of parameters, found {sorted(widths)}.
            """
        )

    n_candidates = sum(c.weights.size for c in contents)
    if n_candidates == 0:
        raise InsufficientDataError(
            """\n
            \r[ merge_chain_files error ]
            \r>> No samples remain after removing the burn-in
            \r>> and thinning the chains.
            """
        )

    printer = StatusPrinter(display=display)
    n_params = widths.pop()
    weights = concatenate([c.weights for c in contents])
    log_likes = concatenate([c.log_likes for c in contents])
    params = concatenate([c.params.reshape([-1, n_params]) for c in contents])
    max_weight = max(c.max_weight for c in contents)
    min_log_like = min(c.min_log_like for c in contents)

    printer.message("Filtering the chain...")
    min_weight = max_weight / n_candidates / NEGLIGIBLE_WEIGHT_FACTOR
    keep = weights >= min_weight
    weights, log_likes, params = weights[keep], log_likes[keep], params[keep, :]
    printer.message(f"{weights.size} elements left after filtering!")

    err_mean, err_var = None, None
    if error_log is not None:
        printer.message(
            f"Matching the {weights.size} samples kept after filtering against the error log..."
        )
        err_mean, err_var, _, _ = error_log.attach(log_likes, params, display=display)

    printer.message("Sorting the chain...")
    return WeightedChain(
        weights=weights,
        log_likes=log_likes,
        params=params,
        err_mean=err_mean,
        err_var=err_var,
        min_log_like=min_log_like,
    )


def load_chain(
    filename: str,
    burn: int = 0,
    thin: int = 1,
    error_log: ErrorLog = None,
    display: bool = True,
) -> WeightedChain:
    """
    Load a single chain file.

    :param str filename: Path of the chain file.
    :param int burn: Number of lines to discard from the start of the chain.
    :param int thin: Only every ``thin``'th line after the burn-in is kept.
    :param error_log: \
        An optional ``ErrorLog`` from which likelihood error estimates are
        attached to the samples.
    :param bool display: Whether to print status messages.

    :return: The loaded ``WeightedChain``, sorted by decreasing weight.
    """
    contents = read_chain_file(filename, burn=burn, thin=thin, display=display)
    return merge_chain_files([contents], error_log=error_log, display=display)


def load_chains(
    filenames: list[str],
    burn: int = 0,
    thin: int = 1,
    error_log: ErrorLog = None,
    display: bool = True,
) -> WeightedChain:
    """
    Load and merge several chain files, for example from independent runs of
    the same sampler, into one ``WeightedChain``. The burn-in and thinning are
    applied to each file separately, while negligible samples are filtered
    using the largest weight found across all of the files.

    :param filenames: Paths of the chain files.
    :param int burn: Number of lines to discard from the start of each chain.
    :param int thin: Only every ``thin``'th line after the burn-in is kept.
    :param error_log: An optional ``ErrorLog`` of likelihood error estimates.
    :param bool display: Whether to print status messages.
    """
    contents = [
        read_chain_file(f, burn=burn, thin=thin, display=display) for f in filenames
    ]
    return merge_chain_files(contents, error_log=error_log, display=display)
