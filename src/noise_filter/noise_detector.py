"""Digitizer noise detection.

The CZMIL digitisers occasionally produce single-sample transients that
look like returns to the waveform processing.  They are recognised by a
sharp change of slope: the second difference of the waveform

    d[k] = s[k] - s[k - 1]
    dd[k] = d[k] - d[k - 1]

exceeds a threshold.  One exceedance anywhere in the waveform marks the
whole channel as noisy; there is no smoothing or debouncing.
"""

from typing import Sequence, Union

import numpy as np


def second_difference(samples: Union[Sequence[int], np.ndarray]) -> np.ndarray:
    """Return the discrete second difference of a waveform.

    Samples are widened to 32-bit integers first so that 16-bit
    digitiser values cannot wrap around.

    Parameters
    ----------
    samples : sequence of int
        Waveform amplitudes.

    Returns
    -------
    numpy.ndarray
        Array of length ``len(samples) - 2`` (empty for fewer than three
        samples).
    """
    wave = np.asarray(samples, dtype=np.int32)
    if wave.ndim != 1:
        raise ValueError("samples must be a one-dimensional sequence")
    if len(wave) < 3:
        return np.zeros(0, dtype=np.int32)
    return np.diff(wave, n=2)


def detect_digitizer_noise(samples: Union[Sequence[int], np.ndarray], threshold: int) -> bool:
    """Check a channel's waveform for a digitizer noise transient.

    Parameters
    ----------
    samples : sequence of int
        Waveform samples of one channel of one record.
    threshold : int
        Second difference above which the channel is considered noisy.
        Zero or negative disables the test.

    Returns
    -------
    bool
        True if any second difference is strictly greater than
        `threshold`.
    """
    if threshold <= 0:
        return False
    return bool(np.any(second_difference(samples) > threshold))
