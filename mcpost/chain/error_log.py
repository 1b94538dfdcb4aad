from warnings import warn
from numpy import ndarray, array, zeros, concatenate, searchsorted, isclose
from mcpost.exceptions import MalformedInputError
from mcpost.utilities import StatusPrinter


def numbered_filenames(root: str, n_files: int) -> list[str]:
    """
    File names following the multi-file naming convention: ``root.txt`` for a
    single file, or ``root_0.txt, root_1.txt, ...`` for several.
    """
    if n_files < 1:
        raise ValueError(
            f"""\n
            \r[ numbered_filenames error ]
            \r>> At least 1 file is required, but 'n_files' is {n_files}.
            """
        )
    if n_files == 1:
        return [f"{root}.txt"]
    return [f"{root}_{i}.txt" for i in range(n_files)]


def read_error_file(filename: str) -> tuple[ndarray, ndarray, ndarray, ndarray]:
    """
    Read the records of one error log file. Each line holds the parameter
    values, followed by the likelihood value, two unused fields, and finally
    the mean and variance of the likelihood error estimate.

    :return: The likelihood values, parameters, means and variances as arrays.
    """
    rows = []
    n_params = None
    with open(filename) as f:
        for line_number, line in enumerate(f):
            fields = line.split()
            if len(fields) == 0:
                break

            if len(fields) < 6:
                raise MalformedInputError(
                    f"""\n
                    \r[ read_error_file error ]
                    \r>> Invalid error log file {filename}. Each line should contain
                    \r>> at least 6 elements, but line {line_number} has {len(fields)}.
                    """
                )

            try:
                values = [float(v) for v in fields]
            except ValueError as err:
                raise MalformedInputError(
                    f"""\n
                    \r[ read_error_file error ]
                    \r>> Invalid error log file {filename}. Line {line_number}
                    \r>> contains a non-numeric field: {err}
                    """
                ) from err

            if n_params is None:
                n_params = len(values) - 5
            elif n_params != len(values) - 5:
                raise MalformedInputError(
                    f"""\n
                    \r[ read_error_file error ]
                    \r>> Invalid error log file {filename}. There are {len(values) - 5}
                    \r>> parameters on line {line_number} while the previous lines
                    \r>> had {n_params} parameters.
                    """
                )
            rows.append(values)

    if len(rows) == 0:
        return zeros(0), zeros([0, 0]), zeros(0), zeros(0)

    table = array(rows)
    return table[:, -5], table[:, :-5], table[:, -2], table[:, -1]


class ErrorLog:
    """
    A set of likelihood error records, which can be matched against chain
    samples to attach an estimate of the error in each sample's likelihood.

    A record matches a sample if its likelihood value is within ``like_window``
    of the sample's likelihood value, and all of its parameter values agree
    with the sample's within a relative tolerance ``rtol``.

    :param log_likes: The likelihood value of each record.
    :param params: The parameter values of each record as a 2D array.
    :param mean: The mean of the likelihood error of each record.
    :param variance: The variance of the likelihood error of each record.
    """

    like_window = 0.05
    rtol = 1e-5

    def __init__(self, log_likes: ndarray, params: ndarray, mean: ndarray, variance: ndarray):
        log_likes = array(log_likes, dtype=float)
        params = array(params, dtype=float)
        if params.ndim != 2 or params.shape[0] != log_likes.size:
            raise ValueError(
                f"""\n
                \r[ ErrorLog error ]
                \r>> The 'params' argument must be a 2D array with one row
                \r>> per record, but instead has shape {params.shape}.
                """
            )

        sorter = log_likes.argsort(kind="stable")
        self.log_likes = log_likes[sorter]
        self.params = params[sorter, :]
        self.mean = array(mean, dtype=float)[sorter]
        self.variance = array(variance, dtype=float)[sorter]

    @classmethod
    def from_files(cls, filenames: list[str], display: bool = True) -> "ErrorLog":
        """
        Read and combine the records from a list of error log files.
        """
        printer = StatusPrinter(display=display)
        records = []
        for filename in filenames:
            printer.message(f"Reading error file {filename}...")
            records.append(read_error_file(filename))

        widths = {r[1].shape[1] for r in records if r[0].size > 0}
        if len(widths) > 1:
            raise MalformedInputError(
                f"""\n
                \r[ ErrorLog error ]
                \r>> The given error log files do not agree on the number
                \r>> of parameters, found {sorted(widths)}.
                """
            )

        n_params = widths.pop() if widths else 0
        log_likes = concatenate([r[0] for r in records])
        params = concatenate([r[1].reshape([-1, n_params]) for r in records])
        mean = concatenate([r[2] for r in records])
        variance = concatenate([r[3] for r in records])
        printer.message(
            f"Successfully read all of the error files. A total of {log_likes.size} records read."
        )
        return cls(log_likes, params, mean, variance)

    @classmethod
    def load(cls, root: str, n_files: int = 1, display: bool = True) -> "ErrorLog":
        """
        Read the error log files ``root.txt`` (if ``n_files`` is 1) or
        ``root_0.txt, root_1.txt, ...`` otherwise.
        """
        return cls.from_files(numbered_filenames(root, n_files), display=display)

    def __len__(self) -> int:
        return self.log_likes.size

    @property
    def n_parameters(self) -> int:
        return self.params.shape[1]

    def match(self, log_like: float, params: ndarray) -> int:
        """
        Find the first record matching a sample.

        :return: The index of the matching record, or -1 if there is no match.
        """
        lwr, upr = searchsorted(
            self.log_likes, [log_like - self.like_window, log_like + self.like_window]
        )
        if upr > lwr:
            same = isclose(self.params[lwr:upr, :], params[None, :], rtol=self.rtol, atol=0.0)
            equal = same.all(axis=1)
            if equal.any():
                return lwr + int(equal.argmax())
        return -1

    def attach(self, log_likes: ndarray, params: ndarray, display: bool = True):
        """
        Look up the error estimate for each of a set of samples.

        :param log_likes: The likelihood values of the samples.
        :param params: The parameter values of the samples as a 2D array.

        :return: \
            The mean and variance of the likelihood error of each sample as two
            arrays, where samples without a matching record are given zero, followed
            by the numbers of samples which were and were not matched.
        """
        if len(self) > 0 and params.shape[1] != self.n_parameters:
            raise ValueError(
                f"""\n
                \r[ ErrorLog error ]
                \r>> The samples have {params.shape[1]} parameters but the
                \r>> error records have {self.n_parameters}.
                """
            )

        err_mean = zeros(log_likes.size)
        err_var = zeros(log_likes.size)
        found = 0
        for i, (like, theta) in enumerate(zip(log_likes, params)):
            k = self.match(like, theta)
            if k >= 0:
                err_mean[i] = self.mean[k]
                err_var[i] = self.variance[k]
                found += 1
        not_found = log_likes.size - found

        StatusPrinter(display=display).message(
            f"Entries found in the error log: {found} not found: {not_found}"
            f" (of {log_likes.size} samples)"
        )
        if found == 0 and not_found > 0:
            warn(
                f"""\n
                \r[ ErrorLog warning ]
                \r>> None of the {not_found} samples matched a record
                \r>> in the error log.
                """
            )
        return err_mean, err_var, found, not_found
