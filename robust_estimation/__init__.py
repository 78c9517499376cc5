"""
Robust Estimation

Sample-consensus estimation (RANSAC, LMedS, MSAC, PROSAC, PROMedS) of radio
source position, transmitted power and path-loss exponent from RSSI
readings, and of accelerometer calibration from a known gravity norm.

Conventions:
- RSSI and transmitted power: dBm internally, Watts available at the API boundary
- Positions: meters, 2D (x, y) or 3D (x, y, z)
- Frequency: Hz
- Specific force: m/s^2
- Standard deviation: same unit as the measured value
"""

__version__ = "1.0.0"

from .core.errors import LockedError, NotReadyError, RobustEstimatorError
from .core.models import (
    Point,
    WifiAccessPoint,
    Beacon,
    RssiReading,
    AccelerometerReading,
    RobustEstimatorMethod,
    RobustEstimatorOptions,
)
from .core.results import EstimationResult, InlierData, EstimatedRadioSource, ErrorEllipse
from .core.estimators import (
    RobustEstimatorListener,
    RobustRssiRadioSourceEstimator2D,
    RobustRssiRadioSourceEstimator3D,
    RobustKnownGravityNormAccelerometerCalibrator,
)

__all__ = [
    # Version
    "__version__",

    # Errors
    "LockedError",
    "NotReadyError",
    "RobustEstimatorError",

    # Models
    "Point",
    "WifiAccessPoint",
    "Beacon",
    "RssiReading",
    "AccelerometerReading",
    "RobustEstimatorMethod",
    "RobustEstimatorOptions",

    # Results
    "EstimationResult",
    "InlierData",
    "EstimatedRadioSource",
    "ErrorEllipse",

    # Estimators
    "RobustEstimatorListener",
    "RobustRssiRadioSourceEstimator2D",
    "RobustRssiRadioSourceEstimator3D",
    "RobustKnownGravityNormAccelerometerCalibrator",
]
