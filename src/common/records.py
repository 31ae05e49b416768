"""Record types shared by the noise filter.

A CZMIL shot is stored as two records with the same index: a point
record holding the returns detected on each channel, and a waveform
record holding the digitised samples of each channel.  The filter reads
both, decides per channel whether the returns should be invalidated,
and writes the point record back.

The status of a return is modelled as a small closed set of states
instead of a bitmask plus reason code, so that a filter-invalid return
without a reason cannot exist.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, FrozenSet, List, Optional, Union

import numpy as np

PACKET_SIZE = 64
"""Number of waveform samples per digitiser packet."""


class Channel(IntEnum):
    """CZMIL receiver channels, keyed by channel number."""

    SHALLOW_1 = 1
    SHALLOW_2 = 2
    SHALLOW_3 = 3
    SHALLOW_4 = 4
    SHALLOW_5 = 5
    SHALLOW_6 = 6
    SHALLOW_7 = 7
    IR = 8
    DEEP = 9


class CeilingClass(Enum):
    """Which start-amplitude ceiling applies to a channel."""

    SHALLOW = "shallow"
    DEEP = "deep"


CEILING_CLASS: Dict[Channel, CeilingClass] = {
    channel: (CeilingClass.DEEP if channel is Channel.DEEP else CeilingClass.SHALLOW)
    for channel in Channel
}

FILTERABLE_CHANNELS: FrozenSet[Channel] = frozenset(
    channel for channel in Channel if channel is not Channel.IR
)


class FilterReason(IntEnum):
    """Why a return has been marked filter invalid.

    Only `DIGITIZER_NOISE` and `START_AMP_EXCEEDS_THRESHOLD` are produced
    by this package; the others come from earlier processing and are
    left alone.
    """

    DIGITIZER_NOISE = 1
    START_AMP_EXCEEDS_THRESHOLD = 2
    AUTOMATED_FILTER = 3
    INTERACTIVE_EDIT = 4


@dataclass(frozen=True)
class Valid:
    """Return is usable."""


@dataclass(frozen=True)
class BaseInvalid:
    """Return was invalidated outside the filter.

    Whatever filter bit and reason code the return already carried are
    kept verbatim so they can be written back unchanged.
    """

    filtered: bool = False
    reason_code: int = 0


@dataclass(frozen=True)
class FilterInvalid:
    """Return was rejected by a filter for `reason`."""

    reason: FilterReason


ReturnState = Union[Valid, BaseInvalid, FilterInvalid]

VALID = Valid()


@dataclass(frozen=True)
class Return:
    """A single laser return on one channel of a record."""

    state: ReturnState = VALID

    @property
    def is_valid(self) -> bool:
        return isinstance(self.state, Valid)

    @property
    def is_base_invalid(self) -> bool:
        return isinstance(self.state, BaseInvalid)

    def filter_reason(self) -> Optional[FilterReason]:
        """Reason of a filter invalidation, or None."""
        if isinstance(self.state, FilterInvalid):
            return self.state.reason
        return None


@dataclass
class PointRecord:
    """Returns of every channel of one shot."""

    index: int
    returns: Dict[Channel, List[Return]] = field(default_factory=dict)

    def channel_returns(self, channel: Channel) -> List[Return]:
        return self.returns.get(channel, [])

    def return_count(self) -> int:
        return sum(len(r) for r in self.returns.values())


@dataclass
class WaveformRecord:
    """Digitised waveform samples of every channel of one shot."""

    index: int
    samples: Dict[Channel, np.ndarray] = field(default_factory=dict)

    def channel_samples(self, channel: Channel) -> np.ndarray:
        """Samples of `channel`; empty if the channel has no packets."""
        return self.samples.get(channel, np.zeros(0, dtype=np.int16))

    def packet_count(self, channel: Channel) -> int:
        return len(self.channel_samples(channel)) // PACKET_SIZE
