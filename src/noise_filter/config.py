"""Filter configuration.

`FilterConfig` holds the set of channels to filter and the three
thresholds that drive the filter.  A threshold of zero or less switches
the corresponding test off.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, FrozenSet, Iterable, List, Mapping, Union

from ..utils.config import load_config
from ..common.records import CEILING_CLASS, FILTERABLE_CHANNELS, CeilingClass, Channel


class ConfigError(ValueError):
    """Raised when a filter configuration cannot do anything useful."""


def _to_channels(values: Iterable[Union[int, Channel]]) -> FrozenSet[Channel]:
    channels = set()
    for value in values:
        try:
            channel = Channel(int(value))
        except ValueError:
            raise ConfigError(f"unknown channel: {value!r}") from None
        if channel not in FILTERABLE_CHANNELS:
            raise ConfigError(f"channel {int(channel)} cannot be filtered")
        channels.add(channel)
    return frozenset(channels)


@dataclass(frozen=True)
class FilterConfig:
    """Channels and thresholds for one filter run."""

    channels: FrozenSet[Channel] = field(default_factory=frozenset)
    """Channels to filter.  An empty set makes the run a no-op."""

    noise_threshold: int = 0
    """Second-difference threshold for digitizer noise detection."""

    shallow_ceiling: int = 0
    """Start amplitude ceiling for the shallow channels."""

    deep_ceiling: int = 0
    """Start amplitude ceiling for the deep channel."""

    def __post_init__(self):
        object.__setattr__(self, "channels", _to_channels(self.channels))

    @property
    def noise_enabled(self) -> bool:
        return self.noise_threshold > 0

    def ceiling_for(self, channel: Channel) -> int:
        """Return the start amplitude ceiling that applies to `channel`."""
        if CEILING_CLASS[channel] is CeilingClass.DEEP:
            return self.deep_ceiling
        return self.shallow_ceiling

    def selected_channels(self) -> List[Channel]:
        """Enabled channels in channel-number order."""
        return sorted(self.channels)

    def validate(self) -> "FilterConfig":
        """Check that the configuration has something to do.

        Raises
        ------
        ConfigError
            If no channel is selected or if every test is disabled.
        """
        if not self.channels:
            raise ConfigError("no channel selected for filtering")
        if self.noise_threshold <= 0 and self.shallow_ceiling <= 0 and self.deep_ceiling <= 0:
            raise ConfigError(
                "noise threshold, shallow amplitude and deep amplitude are all disabled"
            )
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FilterConfig":
        """Build a configuration from a mapping.

        Recognised keys are ``channels`` (list of channel numbers),
        ``noise_threshold``, ``shallow_amplitude`` and
        ``deep_amplitude``.  Missing keys take their defaults.
        """
        unknown = set(data) - {"channels", "noise_threshold", "shallow_amplitude", "deep_amplitude"}
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(sorted(unknown))}")
        try:
            return cls(
                channels=data.get("channels") or (),
                noise_threshold=int(data.get("noise_threshold", 0)),
                shallow_ceiling=int(data.get("shallow_amplitude", 0)),
                deep_ceiling=int(data.get("deep_amplitude", 0)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "FilterConfig":
        return cls.from_dict(load_config(str(path)))
