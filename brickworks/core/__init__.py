"""brickworks.core

Core primitives: configuration, errors, wire models, runtime types, time.

Nothing in here talks to the network except `client`, which is imported
explicitly by the layers that need it.
"""

from .config import Config
from .exceptions import BrickworksError, ConfigError, FactoryError
from .models import Challenge, ChallengeSolution, DeliveredUnit, Delivery, Quote
from .time import decode_manufacturing_time, utc_now
from .types import BatchReport, DeliveryResult, FactoryOrder, OrderState

__all__ = [
    "BrickworksError",
    "BatchReport",
    "Challenge",
    "ChallengeSolution",
    "Config",
    "ConfigError",
    "DeliveredUnit",
    "Delivery",
    "DeliveryResult",
    "FactoryError",
    "FactoryOrder",
    "OrderState",
    "Quote",
    "decode_manufacturing_time",
    "utc_now",
]
