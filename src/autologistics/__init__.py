"""Auto-logistics delivery and collection request lifecycle.

Manages the proposal, pricing gate, approval, scheduling, execution and
audit of vehicle pickups (client address to yard) and deliveries (yard to
client address) across client, admin and specialist actors.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
