"""Tests for the filter driver."""

import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from src.common.czmil_io import (
    BASE_INVALID,
    FILTER_INVALID,
    PairedRecordStore,
    StoreReadError,
    StoreWriteError,
    write_point_file,
    write_waveform_file,
)
from src.common.records import (
    BaseInvalid,
    Channel,
    FilterInvalid,
    FilterReason,
    PointRecord,
    Return,
    Valid,
    WaveformRecord,
)
from src.noise_filter.config import FilterConfig
from src.noise_filter.driver import FilterDriver, FilterSummary, run_filter


class MemoryStore:
    """Record store kept entirely in memory."""

    def __init__(self, points, waveforms, fail_read_at=None, fail_write_at=None):
        self.points = points
        self.waveforms = waveforms
        self.updates = []
        self.fail_read_at = fail_read_at
        self.fail_write_at = fail_write_at

    def __len__(self):
        return len(self.points)

    def read_point_record(self, index):
        if index == self.fail_read_at:
            raise StoreReadError(f"cannot read record {index}")
        return self.points[index]

    def read_waveform_record(self, index):
        return self.waveforms[index]

    def update_point_record(self, index, record):
        if index == self.fail_write_at:
            raise StoreWriteError(f"cannot write record {index}")
        self.updates.append(index)
        self.points[index] = record


def spike_wave(first=0):
    wave = np.zeros(64, dtype=np.int16)
    wave[3] = 100
    wave[0] = first
    return wave


def flat_wave(first=0):
    """One packet at a constant level."""
    return np.full(64, first, dtype=np.int16)


class TestFilterDriver:
    """Test suite for FilterDriver with an in-memory store."""

    def create_store(self, **kwargs):
        """Three records: clean, noisy on channel 1, deep start above 100."""
        valid = Return(Valid())
        base = Return(BaseInvalid())
        points = [
            PointRecord(0, {Channel.SHALLOW_1: [valid, valid]}),
            PointRecord(1, {Channel.SHALLOW_1: [valid, base, valid], Channel.SHALLOW_2: [valid]}),
            PointRecord(2, {Channel.DEEP: [valid], Channel.SHALLOW_1: [valid]}),
        ]
        waveforms = [
            WaveformRecord(0, {Channel.SHALLOW_1: flat_wave()}),
            WaveformRecord(1, {Channel.SHALLOW_1: spike_wave(), Channel.SHALLOW_2: flat_wave()}),
            WaveformRecord(2, {Channel.DEEP: flat_wave(first=101), Channel.SHALLOW_1: flat_wave(first=101)}),
        ]
        return MemoryStore(points, waveforms, **kwargs)

    def test_run_counts_and_updates(self):
        store = self.create_store()
        config = FilterConfig(channels=[1, 2, 9], noise_threshold=50, deep_ceiling=100)

        summary = FilterDriver(show_progress=False).run(store, config)

        assert isinstance(summary, FilterSummary)
        assert summary.records_processed == 3
        assert summary.records_updated == 2
        assert summary.invalidated == 3
        assert summary.by_reason[FilterReason.DIGITIZER_NOISE] == 2
        assert summary.by_reason[FilterReason.START_AMP_EXCEEDS_THRESHOLD] == 1
        assert summary.by_channel == {Channel.SHALLOW_1: 2, Channel.DEEP: 1}
        assert store.updates == [1, 2]
        assert store.points[2].returns[Channel.SHALLOW_1] == [Return(Valid())]

    def test_second_run_is_idempotent(self):
        """Running twice with the same configuration invalidates nothing more."""
        store = self.create_store()
        config = FilterConfig(channels=[1, 2, 9], noise_threshold=50, deep_ceiling=100)

        first = run_filter(store, config)
        snapshot = [dict(p.returns) for p in store.points]
        second = FilterDriver(show_progress=False).run(store, config)

        assert first == 3
        assert second.invalidated == 0
        assert second.reset == 2
        assert [dict(p.returns) for p in store.points] == snapshot

    def test_higher_threshold_restores_noise_returns(self):
        """A later run with a larger threshold clears earlier noise flags."""
        store = self.create_store()
        run_filter(store, FilterConfig(channels=[1], noise_threshold=50))
        assert store.points[1].returns[Channel.SHALLOW_1][0] == Return(FilterInvalid(FilterReason.DIGITIZER_NOISE))

        summary = FilterDriver(show_progress=False).run(store, FilterConfig(channels=[1], noise_threshold=250))
        assert summary.invalidated == 0
        assert summary.reset == 2
        assert store.points[1].returns[Channel.SHALLOW_1][0] == Return(Valid())

    def test_amplitude_only_run_keeps_noise_flags(self):
        """Without noise detection earlier noise flags stay in place."""
        store = self.create_store()
        run_filter(store, FilterConfig(channels=[1], noise_threshold=50))
        updates_before = list(store.updates)

        summary = FilterDriver(show_progress=False).run(store, FilterConfig(channels=[1], shallow_ceiling=1000))
        assert summary.reset == 0
        assert summary.records_updated == 0
        assert store.updates == updates_before

    @pytest.mark.parametrize(
        "config",
        [
            FilterConfig(channels=[], noise_threshold=50, shallow_ceiling=100, deep_ceiling=100),
            FilterConfig(channels=[1, 9]),
            FilterConfig(channels=[1, 9], noise_threshold=-5, shallow_ceiling=0, deep_ceiling=-1),
        ],
    )
    def test_nothing_enabled_is_a_no_op(self, config):
        """No channel or no enabled test leaves every record untouched."""
        store = self.create_store()
        summary = FilterDriver(show_progress=False).run(store, config)
        assert summary.invalidated == 0
        assert summary.reset == 0
        assert summary.records_updated == 0
        assert store.updates == []

    def test_read_failure_aborts(self):
        """Earlier updates stay, later records are not processed."""
        store = self.create_store(fail_read_at=2)
        config = FilterConfig(channels=[1, 9], noise_threshold=50, deep_ceiling=100)
        with pytest.raises(StoreReadError):
            FilterDriver(show_progress=False).run(store, config)
        assert store.updates == [1]

    def test_write_failure_aborts(self):
        store = self.create_store(fail_write_at=1)
        config = FilterConfig(channels=[1, 9], noise_threshold=50, deep_ceiling=100)
        with pytest.raises(StoreWriteError):
            FilterDriver(show_progress=False).run(store, config)
        assert store.updates == []

    def test_summary_to_dict(self):
        store = self.create_store()
        summary = FilterDriver(show_progress=False).run(
            store, FilterConfig(channels=[1, 9], noise_threshold=50, deep_ceiling=100)
        )
        data = summary.to_dict()
        assert data["invalidated"] == 3
        assert data["by_reason"] == {"DIGITIZER_NOISE": 2, "START_AMP_EXCEEDS_THRESHOLD": 1}
        assert data["by_channel"] == {1: 2, 9: 1}


class TestFilterDriverOnDisk:
    """Integration tests running the driver against Parquet files."""

    def create_dataset(self, directory: Path) -> Path:
        """Write a small .cpf/.cwf pair and return the .cpf path."""
        points = pd.DataFrame({
            "record":        [0, 0, 1, 1, 1, 2],
            "channel":       [1, 1, 1, 1, 9, 9],
            "return_index":  [0, 1, 0, 1, 0, 0],
            "status":        [0, 0, 0, BASE_INVALID, 0, 0x04],
            "filter_reason": [0, 0, 0, 0, 0, 0],
            "elevation":     [-1.5, -2.0, -3.25, -3.5, -10.0, -12.0],
        })
        waveforms = pd.DataFrame({
            "record":  [0, 1, 1, 2],
            "channel": [1, 1, 9, 9],
            "samples": [flat_wave(), spike_wave(), flat_wave(), flat_wave(first=150)],
        })
        cpf_path = directory / "line_01.cpf"
        write_point_file(cpf_path, points)
        write_waveform_file(directory / "line_01.cwf", waveforms)
        return cpf_path

    def test_run_and_persist(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cpf_path = self.create_dataset(Path(tmpdir))
            config = FilterConfig(channels=[1, 9], noise_threshold=50, deep_ceiling=100)

            with PairedRecordStore.open(cpf_path) as store:
                summary = FilterDriver(show_progress=False).run(store, config)

            assert summary.invalidated == 2
            assert summary.records_updated == 2

            frame = pd.read_parquet(cpf_path).sort_values(["record", "channel", "return_index"])
            frame = frame.reset_index(drop=True)
            assert list(frame["status"]) == [0, 0, FILTER_INVALID, BASE_INVALID, 0, 0x04 | FILTER_INVALID]
            assert list(frame["filter_reason"]) == [
                0, 0,
                int(FilterReason.DIGITIZER_NOISE), 0,
                0,
                int(FilterReason.START_AMP_EXCEEDS_THRESHOLD),
            ]
            # Measured values are never modified
            assert list(frame["elevation"]) == [-1.5, -2.0, -3.25, -3.5, -10.0, -12.0]

            with PairedRecordStore.open(cpf_path) as store:
                second = FilterDriver(show_progress=False).run(store, config)
            assert second.invalidated == 0
