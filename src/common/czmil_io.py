"""Point and waveform record stores.

A dataset is a pair of Parquet tables sharing a base name:

``<name>.cpf``
    One row per return with the columns ``record``, ``channel``,
    ``return_index``, ``status`` and ``filter_reason``.  Any further
    columns (elevations, ranges, ...) are carried through untouched.
``<name>.cwf``
    One row per record and channel with the columns ``record``,
    ``channel`` and ``samples`` (a list of int16 amplitudes whose length
    is a multiple of the packet size).

Records are addressed by their index.  Point stores opened for update
keep modified statuses in memory and write the table back when they
are flushed or closed.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Tuple, Union

import numpy as np
import pandas as pd

from .records import (
    PACKET_SIZE,
    BaseInvalid,
    Channel,
    FilterInvalid,
    FilterReason,
    PointRecord,
    Return,
    ReturnState,
    VALID,
    Valid,
    WaveformRecord,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]

POINT_EXTENSION = ".cpf"
WAVEFORM_EXTENSION = ".cwf"

BASE_INVALID = 0x01
"""Status bit: return invalidated by hand or by upstream processing."""

FILTER_INVALID = 0x02
"""Status bit: return invalidated by a filter, see ``filter_reason``."""

WAVEFORM_VALID = 0

POINT_COLUMNS = ("record", "channel", "return_index", "status", "filter_reason")
WAVEFORM_COLUMNS = ("record", "channel", "samples")
SAMPLE_RANGE = np.iinfo(np.int16)


class StoreError(Exception):
    """Base exception for record store errors."""
    pass


class StoreOpenError(StoreError):
    """Raised when a store cannot be opened in the requested mode."""
    def __init__(self, path: Path, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = f"Cannot open {path}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class StoreReadError(StoreError):
    """Raised when a record cannot be read."""
    pass


class StoreWriteError(StoreError):
    """Raised when a record cannot be updated or written back."""
    pass


class OpenMode(Enum):
    READONLY = "r"
    UPDATE = "r+"


def decode_state(status: int, reason: int) -> ReturnState:
    """Translate a status bitmask and reason code into a return state.

    Raises
    ------
    StoreReadError
        For a filter-invalid return without a reason or with an unknown
        reason code.
    """
    if status & BASE_INVALID:
        return BaseInvalid(filtered=bool(status & FILTER_INVALID), reason_code=int(reason))
    if status & FILTER_INVALID:
        if reason == WAVEFORM_VALID:
            raise StoreReadError("filter invalid return without a filter reason")
        try:
            return FilterInvalid(FilterReason(int(reason)))
        except ValueError:
            raise StoreReadError(f"unknown filter reason code {int(reason)}") from None
    return VALID


def encode_state(state: ReturnState, status: int, reason: int) -> Tuple[int, int]:
    """Translate a return state back into (status, reason).

    Bits other than the filter bit are kept from `status`.  Base-invalid
    returns are passed through unchanged.
    """
    if isinstance(state, BaseInvalid):
        return int(status), int(reason)
    if isinstance(state, Valid):
        return int(status) & ~FILTER_INVALID, WAVEFORM_VALID
    return int(status) | FILTER_INVALID, int(state.reason)


def waveform_path_for(cpf_path: PathLike) -> Path:
    """Return the waveform file paired with a point file."""
    cpf_path = Path(cpf_path)
    if cpf_path.suffix.lower() != POINT_EXTENSION:
        raise ValueError(f"{cpf_path} does not have a {POINT_EXTENSION} extension")
    return cpf_path.with_suffix(WAVEFORM_EXTENSION)


def _read_table(path: Path, mode: OpenMode, columns) -> pd.DataFrame:
    if not path.is_file():
        raise StoreOpenError(path, "no such file")
    if mode is OpenMode.UPDATE and not os.access(path, os.W_OK):
        raise StoreOpenError(path, "file is not writable")
    try:
        frame = pd.read_parquet(path)
    except (OSError, ValueError) as exc:
        raise StoreOpenError(path, str(exc)) from exc
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise StoreOpenError(path, f"missing columns: {', '.join(missing)}")
    if len(frame) and frame["record"].min() < 0:
        raise StoreOpenError(path, "negative record index")
    return frame


class _TableStore:
    """Record-indexed access to a table sorted by record."""

    sort_columns: Tuple[str, ...] = ("record", "channel")
    required_columns: Tuple[str, ...] = ()

    def __init__(self, path: PathLike, mode: OpenMode = OpenMode.READONLY):
        self.path = Path(path)
        self.mode = mode
        frame = _read_table(self.path, mode, self.required_columns)
        self._frame = frame.sort_values(list(self.sort_columns), kind="stable").reset_index(drop=True)
        records = self._frame["record"].to_numpy()
        self.number_of_records = int(records.max()) + 1 if len(records) else 0
        self._offsets = np.searchsorted(records, np.arange(self.number_of_records + 1), side="left")
        self._channels = self._frame["channel"].to_numpy()
        self.closed = False
        logger.debug(f"Opened {self.path} ({mode.name}, {self.number_of_records} records)")

    def __len__(self) -> int:
        return self.number_of_records

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _rows(self, index: int) -> slice:
        if self.closed:
            raise StoreReadError(f"{self.path} is closed")
        if not 0 <= index < self.number_of_records:
            raise StoreReadError(
                f"record {index} out of range for {self.path} ({self.number_of_records} records)"
            )
        return slice(int(self._offsets[index]), int(self._offsets[index + 1]))

    def _channel(self, value) -> Channel:
        try:
            return Channel(int(value))
        except ValueError:
            raise StoreReadError(f"{self.path}: unknown channel {value!r}") from None

    def close(self) -> None:
        self.closed = True


class PointStore(_TableStore):
    """Point (return) records of a ``.cpf`` file."""

    sort_columns = ("record", "channel", "return_index")
    required_columns = POINT_COLUMNS

    def __init__(self, path: PathLike, mode: OpenMode = OpenMode.READONLY):
        super().__init__(path, mode)
        self._status = self._frame["status"].to_numpy(copy=True)
        self._reason = self._frame["filter_reason"].to_numpy(copy=True)
        self._dirty = False

    def read(self, index: int) -> PointRecord:
        rows = self._rows(index)
        returns: Dict[Channel, List[Return]] = {}
        for value, status, reason in zip(self._channels[rows], self._status[rows], self._reason[rows]):
            try:
                state = decode_state(int(status), int(reason))
            except StoreReadError as exc:
                raise StoreReadError(f"{self.path}, record {index}: {exc}") from None
            returns.setdefault(self._channel(value), []).append(Return(state))
        return PointRecord(index, returns)

    def update(self, index: int, record: PointRecord) -> None:
        """Write the statuses of `record` back to record `index`.

        Raises
        ------
        StoreWriteError
            If the store is read-only or closed, or if the record does
            not have the same returns per channel as the stored one.
        """
        if self.mode is not OpenMode.UPDATE:
            raise StoreWriteError(f"{self.path} is not open for update")
        if self.closed:
            raise StoreWriteError(f"{self.path} is closed")
        try:
            rows = self._rows(index)
        except StoreReadError as exc:
            raise StoreWriteError(str(exc)) from None

        positions: Dict[Channel, int] = {}
        new_status = self._status[rows].copy()
        new_reason = self._reason[rows].copy()
        for i, value in enumerate(self._channels[rows]):
            channel = self._channel(value)
            k = positions.get(channel, 0)
            positions[channel] = k + 1
            channel_returns = record.returns.get(channel, [])
            if k >= len(channel_returns):
                raise StoreWriteError(
                    f"{self.path}, record {index}: channel {int(channel)} has too few returns"
                )
            new_status[i], new_reason[i] = encode_state(channel_returns[k].state, new_status[i], new_reason[i])

        for channel, channel_returns in record.returns.items():
            if len(channel_returns) != positions.get(channel, 0):
                raise StoreWriteError(
                    f"{self.path}, record {index}: channel {int(channel)} has "
                    f"{len(channel_returns)} returns, stored record has {positions.get(channel, 0)}"
                )

        self._status[rows] = new_status
        self._reason[rows] = new_reason
        self._dirty = True

    def flush(self) -> None:
        """Write pending updates to disk, replacing the file atomically."""
        if not self._dirty:
            return
        frame = self._frame.copy()
        frame["status"] = self._status
        frame["filter_reason"] = self._reason
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            frame.to_parquet(tmp_path, index=False)
            os.replace(tmp_path, self.path)
        except (OSError, ValueError) as exc:
            raise StoreWriteError(f"Cannot write {self.path}: {exc}") from exc
        self._frame = frame
        self._dirty = False
        logger.debug(f"Flushed {self.path}")

    def close(self) -> None:
        if self.closed:
            return
        try:
            self.flush()
        finally:
            super().close()


class WaveformStore(_TableStore):
    """Waveform records of a ``.cwf`` file."""

    required_columns = WAVEFORM_COLUMNS

    def read(self, index: int) -> WaveformRecord:
        rows = self._rows(index)
        samples: Dict[Channel, np.ndarray] = {}
        for value, wave in zip(self._channels[rows], self._frame["samples"].iloc[rows]):
            channel = self._channel(value)
            if channel in samples:
                raise StoreReadError(f"{self.path}, record {index}: duplicate channel {int(channel)}")
            wave = np.asarray(wave if wave is not None else [])
            if wave.size and (wave.min() < SAMPLE_RANGE.min or wave.max() > SAMPLE_RANGE.max):
                raise StoreReadError(
                    f"{self.path}, record {index}: channel {int(channel)} has samples outside "
                    f"[{SAMPLE_RANGE.min}, {SAMPLE_RANGE.max}]"
                )
            wave = wave.astype(np.int16)
            if len(wave) % PACKET_SIZE:
                raise StoreReadError(
                    f"{self.path}, record {index}: channel {int(channel)} has {len(wave)} samples, "
                    f"not a multiple of {PACKET_SIZE}"
                )
            samples[channel] = wave
        return WaveformRecord(index, samples)


def open_point_store(path: PathLike, mode: OpenMode = OpenMode.READONLY) -> PointStore:
    return PointStore(path, mode)


def open_waveform_store(path: PathLike, mode: OpenMode = OpenMode.READONLY) -> WaveformStore:
    return WaveformStore(path, mode)


def read_point_record(handle: PointStore, index: int) -> PointRecord:
    return handle.read(index)


def read_waveform_record(handle: WaveformStore, index: int) -> WaveformRecord:
    return handle.read(index)


def update_point_record(handle: PointStore, index: int, record: PointRecord) -> None:
    handle.update(index, record)


def close(handle: _TableStore) -> None:
    handle.close()


class PairedRecordStore:
    """A point store opened together with its waveform store.

    The point file is opened for update and the waveform file read-only;
    the waveform path is derived from the point path by swapping the
    extension.
    """

    def __init__(self, points: PointStore, waveforms: WaveformStore):
        self.points = points
        self.waveforms = waveforms

    @classmethod
    def open(cls, cpf_path: PathLike, mode: OpenMode = OpenMode.UPDATE) -> "PairedRecordStore":
        try:
            cwf_path = waveform_path_for(cpf_path)
        except ValueError as exc:
            raise StoreOpenError(Path(cpf_path), str(exc)) from None
        points = open_point_store(cpf_path, mode)
        try:
            waveforms = open_waveform_store(cwf_path, OpenMode.READONLY)
        except StoreError:
            points.close()
            raise
        logger.info(f"File : {points.path}")
        return cls(points, waveforms)

    def __len__(self) -> int:
        return len(self.points)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def read_point_record(self, index: int) -> PointRecord:
        return self.points.read(index)

    def read_waveform_record(self, index: int) -> WaveformRecord:
        return self.waveforms.read(index)

    def update_point_record(self, index: int, record: PointRecord) -> None:
        self.points.update(index, record)

    def close(self) -> None:
        try:
            self.points.close()
        finally:
            self.waveforms.close()


def write_point_file(path: PathLike, frame: pd.DataFrame) -> Path:
    """Write a point table, checking that the required columns exist."""
    path = Path(path)
    missing = [c for c in POINT_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"point table is missing columns: {', '.join(missing)}")
    frame.to_parquet(path, index=False)
    return path


def write_waveform_file(path: PathLike, frame: pd.DataFrame) -> Path:
    """Write a waveform table, checking that the required columns exist."""
    path = Path(path)
    missing = [c for c in WAVEFORM_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"waveform table is missing columns: {', '.join(missing)}")
    frame = frame.copy()
    frame["samples"] = [np.asarray(s, dtype=np.int16) for s in frame["samples"]]
    frame.to_parquet(path, index=False)
    return path
