import math
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

log = logging.getLogger(__name__)

UNDEFINED_MESSAGE = "Could not calculate rate constant. Please ensure all readings are valid."


class InvalidReadingError(ValueError):
    """Raised when a burette reading is not a non-negative number"""


@dataclass(frozen=True)
class Reading:
    """One titration: minutes since mixing and mL of NaOH consumed"""
    time: float
    volume: float


def parse_volume(raw):
    """Turn whatever the input control holds into a volume in mL.

    Accepts numbers or strings. Anything non-numeric, non-finite or
    negative raises InvalidReadingError.
    """
    if isinstance(raw, bool):
        raise InvalidReadingError(f"not a burette reading: {raw!r}")
    if isinstance(raw, str):
        raw = raw.strip()
    try:
        volume = float(raw)
    except (TypeError, ValueError):
        raise InvalidReadingError(f"not a burette reading: {raw!r}") from None
    if not math.isfinite(volume) or volume < 0:
        raise InvalidReadingError(f"burette reading must be a non-negative number, got {raw!r}")
    return volume


class ReadingCollector:
    """Append-only series of readings taken on a fixed schedule"""

    def __init__(self, schedule, synthetic_volumes):
        self.schedule = tuple(schedule)
        self.synthetic_volumes = tuple(synthetic_volumes)
        self._readings = []

    @property
    def readings(self):
        return tuple(self._readings)

    @property
    def complete(self):
        return len(self._readings) >= len(self.schedule)

    @property
    def next_time(self):
        if self.complete:
            return None
        return self.schedule[len(self._readings)]

    def commit(self, volume):
        if self.complete:
            raise RuntimeError("reading schedule is exhausted")
        reading = Reading(time=self.next_time, volume=volume)
        self._readings.append(reading)
        log.info("Reading committed: t=%s min, V=%s mL", reading.time, reading.volume)
        return reading

    def fill_synthetic(self):
        """Commit the predefined volumes for every timepoint still open."""
        added = []
        while not self.complete:
            added.append(self.commit(self.synthetic_volumes[len(self._readings)]))
        return added


@dataclass(frozen=True)
class CalculationResult:
    rate_constant: Optional[float] = None
    samples: tuple = ()

    @property
    def defined(self):
        return self.rate_constant is not None

    def describe(self):
        if not self.defined:
            return UNDEFINED_MESSAGE
        return f"Calculated Rate Constant (k): {self.rate_constant:.4f} min⁻¹"


def _arrays(readings):
    times = np.array([r.time for r in readings], dtype=float)
    volumes = np.array([r.volume for r in readings], dtype=float)
    return times, volumes


def linearized(readings, v_infinity):
    """Points (t, log10((V∞ - V0) / (V∞ - Vt))) for t > 0.

    Under pseudo-first-order kinetics these lie on a line of slope k / 2.303.
    Points whose ratio is undefined are dropped.
    """
    if len(readings) < 2:
        return np.empty(0), np.empty(0)
    times, volumes = _arrays(readings)
    with np.errstate(divide="ignore", invalid="ignore"):
        y = np.log10((v_infinity - volumes[0]) / (v_infinity - volumes[1:]))
    t = times[1:]
    keep = np.isfinite(y) & (volumes[1:] != v_infinity)
    return t[keep], y[keep]


def rate_constants(readings, v_infinity):
    """Per-sample k for every reading after t=0; NaN where undefined."""
    if len(readings) < 2:
        return np.empty(0)
    times, volumes = _arrays(readings)
    remaining = v_infinity - volumes[1:]
    with np.errstate(divide="ignore", invalid="ignore"):
        k = (2.303 / times[1:]) * np.log10((v_infinity - volumes[0]) / remaining)
    k[(remaining == 0) | ~np.isfinite(k)] = np.nan
    return k


def calculate_rate_constant(readings, v_infinity):
    k = rate_constants(readings, v_infinity)
    valid = k[~np.isnan(k)]
    if valid.size == 0:
        log.warning("No reading produced a usable rate constant")
        return CalculationResult()
    mean = float(valid.mean())
    log.info("Average k = %.4f min^-1 from %d samples", mean, valid.size)
    return CalculationResult(rate_constant=mean, samples=tuple(float(v) for v in valid))
