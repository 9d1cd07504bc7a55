"""Oracle Lens - Scryfall-style search over local oracle card data."""

__version__ = "1.0.0"
