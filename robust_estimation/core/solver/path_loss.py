"""robust_estimation.core.solver.path_loss

Log-distance path-loss model and its partial derivatives.

Received power follows

    Pr = Pt * k^n / d^n,    k = c / (4 * pi * f)

which in the dB domain becomes

    Pr(dBm) = Pt(dBm) + 10 * n * log10(k) - 10 * n * log10(d)

Unknown vector layout (only enabled unknowns are present, in this order):
  1) emitter position coordinates (x, y[, z])
  2) transmitted power in dBm
  3) path-loss exponent

All partials are analytic:
  d Pr / d x_j = -10 * n / ln(10) * (x_j - r_j) / d^2
  d Pr / d Pt  = 1
  d Pr / d n   = 10 * log10(k / d)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np


SPEED_OF_LIGHT = 299792458.0
DEFAULT_PATH_LOSS_EXPONENT = 2.0

# Distances below this are clamped to keep log10(d) finite
MIN_DISTANCE = 1e-9

_LN10 = math.log(10.0)


def wavelength_constant(frequency: float) -> float:
    """k = c / (4 pi f) for a carrier frequency in Hz."""
    if frequency <= 0:
        raise ValueError("frequency must be positive")
    return SPEED_OF_LIGHT / (4.0 * math.pi * frequency)


def predict_rssi(
    emitter: np.ndarray,
    receivers: np.ndarray,
    transmitted_power_dbm: float,
    path_loss_exponent: float,
    frequency: float,
) -> np.ndarray:
    """Predicted received power (dBm) at each receiver.

    Args:
        emitter: Emitter position, shape (D,)
        receivers: Receiver positions, shape (m, D)
        transmitted_power_dbm: Transmitted power in dBm
        path_loss_exponent: Path-loss exponent n
        frequency: Carrier frequency in Hz

    Returns:
        Array of shape (m,) with predicted RSSI values
    """
    k = wavelength_constant(frequency)
    d = receiver_distances(emitter, receivers)
    return transmitted_power_dbm + 10.0 * path_loss_exponent * np.log10(k / d)


def receiver_distances(emitter: np.ndarray, receivers: np.ndarray) -> np.ndarray:
    """Clamped Euclidean distances from the emitter to each receiver."""
    diff = np.asarray(emitter, dtype=float)[None, :] - np.asarray(receivers, dtype=float)
    return np.maximum(np.sqrt((diff * diff).sum(axis=1)), MIN_DISTANCE)


@dataclass(frozen=True)
class RadioSourceUnknowns:
    """Which radio-source parameters are estimated.

    Disabled parameters are held at caller-supplied values.
    """

    position: bool = True
    transmitted_power: bool = True
    path_loss_exponent: bool = False

    def __post_init__(self):
        if not (self.position or self.transmitted_power or self.path_loss_exponent):
            raise ValueError("At least one unknown must be enabled for estimation")

    def num_params(self, dimensions: int) -> int:
        """Length of the unknown vector."""
        return (
            (dimensions if self.position else 0)
            + (1 if self.transmitted_power else 0)
            + (1 if self.path_loss_exponent else 0)
        )

    def min_readings(self, dimensions: int) -> int:
        """Minimum number of readings (minimal subset size).

        | enabled                | readings |
        |------------------------|----------|
        | position               | D + 1    |
        | power                  | 2        |
        | path loss              | 2        |
        | position + power       | 2D       |
        | position + path loss   | 2D       |
        | power + path loss      | 3        |
        | all                    | 2D + 1   |
        """
        if self.position and self.transmitted_power and self.path_loss_exponent:
            return 2 * dimensions + 1
        if self.position and (self.transmitted_power or self.path_loss_exponent):
            return 2 * dimensions
        if self.position:
            return dimensions + 1
        if self.transmitted_power and self.path_loss_exponent:
            return 3
        return 2


@dataclass(frozen=True)
class ParameterLayout:
    """Mapping of enabled unknowns to indices in the solver vector."""

    unknowns: RadioSourceUnknowns
    dimensions: int

    @property
    def num_params(self) -> int:
        return self.unknowns.num_params(self.dimensions)

    @property
    def position_slice(self) -> slice:
        return slice(0, self.dimensions if self.unknowns.position else 0)

    @property
    def power_index(self) -> int:
        """Index of transmitted power, -1 when not estimated."""
        if not self.unknowns.transmitted_power:
            return -1
        return self.dimensions if self.unknowns.position else 0

    @property
    def path_loss_index(self) -> int:
        """Index of path-loss exponent, -1 when not estimated."""
        if not self.unknowns.path_loss_exponent:
            return -1
        return self.num_params - 1

    def pack(self, position: np.ndarray, power: float, exponent: float) -> np.ndarray:
        """Build the unknown vector from full parameter values."""
        x = np.zeros(self.num_params, dtype=float)
        if self.unknowns.position:
            x[self.position_slice] = position
        if self.power_index >= 0:
            x[self.power_index] = power
        if self.path_loss_index >= 0:
            x[self.path_loss_index] = exponent
        return x

    def unpack(
        self,
        x: np.ndarray,
        position: np.ndarray,
        power: float,
        exponent: float,
    ) -> Tuple[np.ndarray, float, float]:
        """Merge the unknown vector over fixed parameter values."""
        if self.unknowns.position:
            position = np.asarray(x[self.position_slice], dtype=float)
        if self.power_index >= 0:
            power = float(x[self.power_index])
        if self.path_loss_index >= 0:
            exponent = float(x[self.path_loss_index])
        return position, power, exponent


def path_loss_jacobian(
    layout: ParameterLayout,
    emitter: np.ndarray,
    receivers: np.ndarray,
    path_loss_exponent: float,
    frequency: float,
) -> np.ndarray:
    """Partials of predicted RSSI w.r.t. the enabled unknowns, shape (m, n)."""
    receivers = np.asarray(receivers, dtype=float)
    m = receivers.shape[0]
    J = np.zeros((m, layout.num_params), dtype=float)

    if layout.unknowns.position:
        diff = np.asarray(emitter, dtype=float)[None, :] - receivers
        sqr_d = np.maximum((diff * diff).sum(axis=1), MIN_DISTANCE ** 2)
        J[:, layout.position_slice] = (
            -10.0 * path_loss_exponent / _LN10 * diff / sqr_d[:, None]
        )

    if layout.power_index >= 0:
        J[:, layout.power_index] = 1.0

    if layout.path_loss_index >= 0:
        k = wavelength_constant(frequency)
        d = receiver_distances(emitter, receivers)
        J[:, layout.path_loss_index] = 10.0 * np.log10(k / d)

    return J
