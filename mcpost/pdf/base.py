from dataclasses import dataclass
from numpy import ndarray, array, append, diff, interp, atleast_1d
from scipy.special import erf

# probability contained within one and two standard deviations of a normal
ONE_SIGMA = float(erf(1.0 / 2**0.5))
TWO_SIGMA = float(erf(2.0 / 2**0.5))


class InverseTable:
    """
    A monotone look-up table which linearly interpolates between its entries.

    Keys must be non-decreasing. Where several consecutive entries share the
    same key, only the last of them is kept, which mirrors inserting the
    entries one at a time into an ordered map.

    :param keys: The table keys, in non-decreasing order.
    :param values: The value associated with each key.
    """

    def __init__(self, keys: ndarray, values: ndarray):
        keys = array(keys, dtype=float)
        values = array(values, dtype=float)
        if keys.size != values.size or keys.size == 0:
            raise ValueError(
                f"""\n
                \r[ InverseTable error ]
                \r>> 'keys' and 'values' must be non-empty and of equal size,
                \r>> but have sizes {keys.size} and {values.size}.
                """
            )

        steps = diff(keys)
        if (steps < 0.0).any():
            raise ValueError(
                """\n
                \r[ InverseTable error ]
                \r>> The given 'keys' are not in non-decreasing order.
                """
            )

        keep = append(steps > 0.0, True)
        self.keys = keys[keep]
        self.values = values[keep]

    def __call__(self, key):
        result = interp(atleast_1d(key), self.keys, self.values)
        return result if result.size > 1 else result[0]


@dataclass(frozen=True)
class FittedDensity:
    """
    A smoothing surface together with the inverse table and normalisation
    which were derived from it. The three always change together, so a
    density estimate holds a single instance and swaps it as a whole when
    it is regenerated.
    """

    surface: object
    table: InverseTable
    normalization: float
    error_scale: float = 0.0
