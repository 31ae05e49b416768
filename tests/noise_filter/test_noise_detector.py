"""Unit tests for the digitizer noise detector."""

import numpy as np
import pytest

from src.noise_filter.noise_detector import detect_digitizer_noise, second_difference


def padded(samples, length=64):
    """Pad a short waveform with zeros to a whole packet."""
    wave = np.zeros(length, dtype=np.int16)
    wave[:len(samples)] = samples
    return wave


class TestSecondDifference:
    """Test suite for second_difference."""

    def test_spike(self):
        """Test the second difference around a single-sample spike."""
        dd = second_difference([0, 0, 0, 100, 0, 0, 0])
        assert list(dd) == [0, 100, -200, 100, 0]

    def test_short_sequences(self):
        """Sequences shorter than three samples have no second difference."""
        assert len(second_difference([])) == 0
        assert len(second_difference([5])) == 0
        assert len(second_difference([5, 7])) == 0

    def test_no_int16_overflow(self):
        """Extreme 16-bit values must not wrap around."""
        dd = second_difference(np.array([-32768, 32767, -32768], dtype=np.int16))
        assert dd[0] == -32768 - 2 * 32767 - 32768

    def test_rejects_2d_input(self):
        """Test that a 2D array is rejected."""
        with pytest.raises(ValueError):
            second_difference(np.zeros((4, 4)))


class TestDetectDigitizerNoise:
    """Test suite for detect_digitizer_noise."""

    def test_spike_above_threshold(self):
        """A spike of 100 counts is detected with a threshold of 50."""
        assert detect_digitizer_noise(padded([0, 0, 0, 100, 0, 0, 0]), 50) is True

    def test_spike_below_threshold(self):
        """The same spike is not detected with a threshold of 250."""
        assert detect_digitizer_noise(padded([0, 0, 0, 100, 0, 0, 0]), 250) is False

    def test_comparison_is_signed(self):
        """Only positive second differences are compared with the threshold."""
        # Upward spike: largest positive second difference is 100
        assert detect_digitizer_noise(padded([0, 0, 0, 100, 0, 0, 0]), 150) is False
        # Downward spike: largest positive second difference is 200
        assert detect_digitizer_noise(padded([0, 0, 0, -100, 0, 0, 0]), 150) is True

    def test_equal_to_threshold_is_not_noise(self):
        """Exceedance must be strict."""
        assert detect_digitizer_noise(padded([0, 0, 0, 100, 0, 0, 0]), 100) is False
        assert detect_digitizer_noise(padded([0, 0, 0, 100, 0, 0, 0]), 99) is True

    def test_smooth_waveform(self):
        """A smooth return pulse does not trigger the detector."""
        t = np.arange(128)
        wave = (400 * np.exp(-0.5 * ((t - 60) / 8.0) ** 2)).astype(np.int16)
        assert detect_digitizer_noise(wave, 50) is False

    def test_spike_anywhere_in_waveform(self):
        """A spike in the last packet condemns the channel too."""
        wave = np.full(192, 20, dtype=np.int16)
        wave[180] = 300
        assert detect_digitizer_noise(wave, 100) is True

    def test_disabled_threshold(self):
        """Zero or negative thresholds never detect anything."""
        wave = padded([0, 0, 0, 1000, 0, 0, 0])
        assert detect_digitizer_noise(wave, 0) is False
        assert detect_digitizer_noise(wave, -10) is False

    def test_short_waveforms(self):
        """Fewer than three samples never report noise."""
        assert detect_digitizer_noise([], 1) is False
        assert detect_digitizer_noise([0, 1000], 1) is False

    def test_no_state_between_calls(self):
        """The result of one call does not influence the next."""
        noisy = padded([0, 0, 0, 100, 0, 0, 0])
        clean = np.zeros(64, dtype=np.int16)
        assert detect_digitizer_noise(noisy, 50) is True
        assert detect_digitizer_noise(clean, 50) is False
        assert detect_digitizer_noise(noisy, 50) is True
