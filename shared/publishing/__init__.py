"""
Publishing primitives shared by the publisher and its sinks.
"""

from .base import TallySink
from .errors import (
    DeliveryError,
    PermanentDeliveryError,
    RateLimited,
    TransientDeliveryError,
)
from .render import render_footer, render_tally_text

__all__ = [
    "DeliveryError",
    "PermanentDeliveryError",
    "RateLimited",
    "TallySink",
    "TransientDeliveryError",
    "render_footer",
    "render_tally_text",
]
