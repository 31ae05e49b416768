"""Status reconciliation.

Merges the outcome of the noise detector and the amplitude gate into
the status of every return of a channel, and collects the per-record
result.  Returns invalidated outside the filter (`BaseInvalid`) are
never modified.

Digitizer noise invalidations from an earlier run are cleared before
the channel is evaluated again whenever noise detection is enabled, so
that the noise decision only reflects the current threshold.
Start amplitude invalidations are never cleared.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .amplitude_gate import channel_exceeds_ceiling
from .config import FilterConfig
from .noise_detector import detect_digitizer_noise
from ..common.records import (
    VALID,
    Channel,
    FilterInvalid,
    FilterReason,
    PointRecord,
    Return,
    WaveformRecord,
)


@dataclass
class ChannelOutcome:
    """Result of reconciling the returns of one channel."""

    returns: List[Return]
    changed: bool = False
    invalidated: int = 0
    """Returns filter invalid now whose state differs from the one read."""
    reset: int = 0
    """Stale digitizer noise invalidations that were cleared."""
    by_reason: Counter = field(default_factory=Counter)


def _was_filtered(ret: Return) -> bool:
    return ret.filter_reason() is not None


def reconcile(
    returns: Sequence[Return],
    noise_hit: bool,
    amp_hit: bool,
    noise_enabled: bool,
) -> ChannelOutcome:
    """Compute the new status of the returns of one channel.

    Parameters
    ----------
    returns : sequence of Return
        Returns of the channel, in channel order.  Not modified.
    noise_hit : bool
        Whether the noise detector fired for the channel.
    amp_hit : bool
        Whether the amplitude gate fired for the channel.
    noise_enabled : bool
        Whether noise detection is enabled for this run.  Only then are
        earlier digitizer noise invalidations cleared.

    Returns
    -------
    ChannelOutcome
        The new returns, whether anything changed, and counts.
    """
    new_returns = list(returns)
    outcome = ChannelOutcome(returns=new_returns)

    if noise_enabled:
        for i, ret in enumerate(new_returns):
            if ret.filter_reason() is FilterReason.DIGITIZER_NOISE:
                new_returns[i] = Return(VALID)
                outcome.reset += 1
                outcome.changed = True

    # Nothing to condemn.
    if not any(ret.is_valid for ret in new_returns):
        return outcome

    condemnations = []
    if noise_hit:
        condemnations.append(FilterReason.DIGITIZER_NOISE)
    if amp_hit:
        condemnations.append(FilterReason.START_AMP_EXCEEDS_THRESHOLD)

    for reason in condemnations:
        for i, ret in enumerate(new_returns):
            if ret.is_valid:
                new_returns[i] = Return(FilterInvalid(reason))
                outcome.changed = True

    for before, after in zip(returns, new_returns):
        if before.state != after.state and _was_filtered(after):
            outcome.invalidated += 1
            outcome.by_reason[after.filter_reason()] += 1

    return outcome


@dataclass
class RecordOutcome:
    """Result of filtering one point record."""

    record: PointRecord
    changed: bool = False
    invalidated: int = 0
    reset: int = 0
    by_reason: Counter = field(default_factory=Counter)
    by_channel: Counter = field(default_factory=Counter)


def reconcile_record(
    point_record: PointRecord,
    waveform_record: WaveformRecord,
    config: FilterConfig,
) -> RecordOutcome:
    """Run both tests on every enabled channel of a record.

    Each channel is evaluated on its own waveform only.  The input
    record is not modified; the returned outcome holds a new record.

    Raises
    ------
    ValueError
        If the two records do not share the same index.
    """
    if point_record.index != waveform_record.index:
        raise ValueError(
            f"point record {point_record.index} paired with waveform record {waveform_record.index}"
        )

    returns: Dict[Channel, List[Return]] = dict(point_record.returns)
    result = RecordOutcome(record=PointRecord(point_record.index, returns))

    for channel in config.selected_channels():
        channel_returns = returns.get(channel)
        if not channel_returns:
            continue
        samples = waveform_record.channel_samples(channel)

        noise_hit = config.noise_enabled and detect_digitizer_noise(samples, config.noise_threshold)
        amp_hit = channel_exceeds_ceiling(channel, samples, config)

        outcome = reconcile(channel_returns, noise_hit, amp_hit, config.noise_enabled)
        if not outcome.changed:
            continue

        returns[channel] = outcome.returns
        result.changed = True
        result.invalidated += outcome.invalidated
        result.reset += outcome.reset
        result.by_reason.update(outcome.by_reason)
        if outcome.invalidated:
            result.by_channel[channel] += outcome.invalidated

    return result
