"""Start amplitude gate.

A channel whose waveform already starts above a ceiling is saturated or
contaminated by the preceding pulse, so none of its returns can be
trusted.  The deep channel has its own ceiling; all other channels share
the shallow ceiling.
"""

from typing import Sequence, Union

import numpy as np

from .config import FilterConfig
from ..common.records import Channel


def exceeds_start_amplitude(first_sample: int, ceiling: int) -> bool:
    """True if `first_sample` is above `ceiling`; a ceiling <= 0 never fires."""
    if ceiling <= 0:
        return False
    return int(first_sample) > ceiling


def channel_exceeds_ceiling(
    channel: Channel,
    samples: Union[Sequence[int], np.ndarray],
    config: FilterConfig,
) -> bool:
    """Apply the gate to the first sample of `channel`.

    A channel without samples never exceeds the ceiling.
    """
    if len(samples) == 0:
        return False
    return exceeds_start_amplitude(samples[0], config.ceiling_for(channel))
