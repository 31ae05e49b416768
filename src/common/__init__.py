"""Record types and record stores for CZMIL point and waveform files."""

from .records import (
    CEILING_CLASS,
    FILTERABLE_CHANNELS,
    PACKET_SIZE,
    BaseInvalid,
    CeilingClass,
    Channel,
    FilterInvalid,
    FilterReason,
    PointRecord,
    Return,
    Valid,
    WaveformRecord,
)
from .czmil_io import (
    OpenMode,
    PairedRecordStore,
    PointStore,
    StoreError,
    StoreOpenError,
    StoreReadError,
    StoreWriteError,
    WaveformStore,
)

__all__ = [
    "CEILING_CLASS",
    "FILTERABLE_CHANNELS",
    "PACKET_SIZE",
    "BaseInvalid",
    "CeilingClass",
    "Channel",
    "FilterInvalid",
    "FilterReason",
    "PointRecord",
    "Return",
    "Valid",
    "WaveformRecord",
    "OpenMode",
    "PairedRecordStore",
    "PointStore",
    "StoreError",
    "StoreOpenError",
    "StoreReadError",
    "StoreWriteError",
    "WaveformStore",
]
