"""brickworks: factory ordering client.

Mine credits, buy bricks, trust only what carries the factory's signature.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "1.0.0"
