"""
Audio Signal Primitives

Per-block feature extraction for the voice analyzer:
- PCM normalisation and shape validation
- RMS volume
- Autocorrelation pitch estimate over a bounded lag range
- Low/mid/high band energies from a coarse power spectrum
"""

from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .errors import InsufficientHistoryError, MalformedInputError

INT16_MAX = 32767.0

AudioBlock = Union[np.ndarray, Sequence[float], Sequence[int]]


def to_float_block(samples: AudioBlock, max_length: Optional[int] = None) -> np.ndarray:
    """
    Validate a raw audio block and return it as float64 in [-1, 1].

    Integer PCM is scaled by the int16 range; float input is used as is.
    Blocks longer than max_length are truncated.

    Raises:
        MalformedInputError: empty, multi-dimensional or non-finite input
    """
    if samples is None:
        raise MalformedInputError("audio block is None", source="audio")

    try:
        arr = np.asarray(samples)
    except (TypeError, ValueError) as e:
        raise MalformedInputError(f"audio block is not numeric: {e}", source="audio")

    if arr.ndim != 1:
        raise MalformedInputError(f"audio block must be 1-D, got shape {arr.shape}", source="audio")
    if arr.size == 0:
        raise MalformedInputError("audio block is empty", source="audio")

    if np.issubdtype(arr.dtype, np.integer):
        block = arr.astype(np.float64) / INT16_MAX
    elif np.issubdtype(arr.dtype, np.floating):
        block = arr.astype(np.float64)
    else:
        raise MalformedInputError(f"unsupported sample type {arr.dtype}", source="audio")

    if not np.all(np.isfinite(block)):
        raise MalformedInputError("audio block contains NaN or inf", source="audio")

    if max_length is not None and block.size > max_length:
        block = block[:max_length]

    return block


def rms_volume(block: np.ndarray) -> float:
    """Root mean square amplitude."""
    return float(np.sqrt(np.mean(np.square(block))))


def estimate_pitch(
    block: np.ndarray,
    sample_rate: int,
    min_period: int = 20,
    max_period: int = 200
) -> Optional[float]:
    """
    Estimate the fundamental frequency via autocorrelation.

    Searches lags in [min_period, max_period), bounded by half the block
    length. Each lag's correlation is normalised by the number of overlapping
    samples; the lag with the highest value wins.

    Returns:
        Pitch in Hz, or None when no lag correlates positively (unvoiced)

    Raises:
        InsufficientHistoryError: block too short for the lag range
    """
    n = block.size
    upper = min(max_period, n // 2)
    if upper <= min_period:
        raise InsufficientHistoryError(
            "audio block too short for pitch search",
            required=2 * (min_period + 1),
            available=n,
        )

    # Full autocorrelation, keep non-negative lags only
    full = np.correlate(block, block, mode="full")[n - 1:]
    lags = np.arange(min_period, upper)
    normalised = full[lags] / (n - lags)

    best = int(np.argmax(normalised))
    if normalised[best] <= 0.0:
        return None

    return float(sample_rate) / float(lags[best])


def band_energies(block: np.ndarray) -> Tuple[float, float, float]:
    """
    Split the power spectrum into low/mid/high thirds.

    Each band is normalised by total energy so the three sum to 1.
    The DC bin is excluded. Silent blocks return an even split.
    """
    spectrum = np.fft.rfft(block)
    power = np.square(np.abs(spectrum))[1:]
    if power.size < 3:
        return (1.0 / 3.0, 1.0 / 3.0, 1.0 / 3.0)

    low, mid, high = (float(np.sum(band)) for band in np.array_split(power, 3))
    total = low + mid + high
    if total <= 0.0:
        return (1.0 / 3.0, 1.0 / 3.0, 1.0 / 3.0)

    return (low / total, mid / total, high / total)


def mean_and_variance(values: Sequence[float]) -> Tuple[float, float]:
    """Population mean and variance; (0, 0) for an empty sequence."""
    if len(values) == 0:
        return 0.0, 0.0
    arr = np.asarray(values, dtype=np.float64)
    return float(np.mean(arr)), float(np.var(arr))
