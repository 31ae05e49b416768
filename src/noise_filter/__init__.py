"""CZMIL digitizer noise and start amplitude filter.

This package marks returns of a CZMIL point file as filter invalid when
the waveform of their channel contains a digitizer noise transient or
starts above an amplitude ceiling.  It only toggles the filter status
and reason of returns; measured values are never modified.
"""

__version__ = "1.0.0"

from .config import ConfigError, FilterConfig
from .noise_detector import detect_digitizer_noise, second_difference
from .amplitude_gate import channel_exceeds_ceiling, exceeds_start_amplitude
from .reconciler import ChannelOutcome, RecordOutcome, reconcile, reconcile_record
from .driver import FilterDriver, FilterSummary, run_filter

__all__ = [
    "ConfigError",
    "FilterConfig",
    "detect_digitizer_noise",
    "second_difference",
    "channel_exceeds_ceiling",
    "exceeds_start_amplitude",
    "ChannelOutcome",
    "RecordOutcome",
    "reconcile",
    "reconcile_record",
    "FilterDriver",
    "FilterSummary",
    "run_filter",
]
