"""
Integrations Package.

============================================================
PURPOSE
============================================================
Clients for third-party HTTP endpoints.

COMPONENTS:
- TipGenerator: AI habit tips
- PaymentClient: Ticket payment intents

============================================================
"""

from .ai_tips import (
    TipType,
    Tip,
    parse_tip_response,
    TipGenerator,
)

from .payments import (
    to_minor_units,
    format_price,
    PaymentClient,
)


__all__ = [
    "TipType",
    "Tip",
    "parse_tip_response",
    "TipGenerator",
    "to_minor_units",
    "format_price",
    "PaymentClient",
]
