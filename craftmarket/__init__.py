"""CraftMarket: order lifecycle and inventory reservation for a craft marketplace."""

__version__ = "1.0.0"
