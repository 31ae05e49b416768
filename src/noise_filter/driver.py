"""Filter driver.

Runs the noise filter over every record of a paired point/waveform
store.  Records are processed one at a time in index order; a record is
written back only if the status of at least one of its returns changed.
Any read or write failure aborts the run immediately; records updated
before the failure stay updated.

Usage:
    with PairedRecordStore.open("line_01.cpf") as store:
        summary = FilterDriver().run(store, config)
"""

import sys
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict

from tqdm import tqdm

from ..utils.logging import get_logger
from .config import FilterConfig
from .reconciler import reconcile_record

logger = get_logger(__name__)


@dataclass
class FilterSummary:
    """Totals of one filter run."""

    records_processed: int = 0
    records_updated: int = 0
    invalidated: int = 0
    """Returns newly marked filter invalid."""
    reset: int = 0
    """Stale digitizer noise invalidations cleared before re-evaluation."""
    by_reason: Counter = field(default_factory=Counter)
    by_channel: Counter = field(default_factory=Counter)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records_processed": self.records_processed,
            "records_updated": self.records_updated,
            "invalidated": self.invalidated,
            "reset": self.reset,
            "by_reason": {reason.name: count for reason, count in self.by_reason.items()},
            "by_channel": {int(channel): count for channel, count in self.by_channel.items()},
        }


@dataclass
class FilterDriver:
    """Apply the noise and start amplitude filters to a record store.

    The store must provide ``len()``, ``read_point_record(index)``,
    ``read_waveform_record(index)`` and
    ``update_point_record(index, record)``.
    """

    show_progress: bool = True
    """Whether to draw a percentage progress bar on standard output."""

    def run(self, store, config: FilterConfig) -> FilterSummary:
        """Filter every record of `store`.

        A configuration with no channel selected or every test
        disabled changes nothing.

        Parameters
        ----------
        store : PairedRecordStore
            Store to read from and write to.
        config : FilterConfig
            Channels and thresholds to apply.

        Returns
        -------
        FilterSummary
            Totals of the run.

        Raises
        ------
        StoreError
            On the first record that cannot be read or written.
        """
        summary = FilterSummary()
        n_records = len(store)
        logger.info(
            f"Filtering {n_records} records, channels "
            f"{[int(c) for c in config.selected_channels()]}, noise threshold {config.noise_threshold}, "
            f"shallow amplitude {config.shallow_ceiling}, deep amplitude {config.deep_ceiling}"
        )

        progress = tqdm(
            total=n_records,
            desc="processed",
            unit="rec",
            file=sys.stdout,
            disable=not self.show_progress,
        )
        try:
            for index in range(n_records):
                point_record = store.read_point_record(index)
                waveform_record = store.read_waveform_record(index)

                outcome = reconcile_record(point_record, waveform_record, config)
                if outcome.changed:
                    store.update_point_record(index, outcome.record)
                    summary.records_updated += 1
                    logger.debug(
                        f"Record {index}: {outcome.invalidated} invalidated, {outcome.reset} reset"
                    )

                summary.records_processed += 1
                summary.invalidated += outcome.invalidated
                summary.reset += outcome.reset
                summary.by_reason.update(outcome.by_reason)
                summary.by_channel.update(outcome.by_channel)
                progress.update(1)
        finally:
            progress.close()

        logger.info(
            f"{summary.records_updated} of {summary.records_processed} records updated, "
            f"{summary.invalidated} returns invalidated"
        )
        return summary


def run_filter(store, config: FilterConfig, show_progress: bool = False) -> int:
    """Filter `store` and return the number of returns invalidated."""
    return FilterDriver(show_progress=show_progress).run(store, config).invalidated
