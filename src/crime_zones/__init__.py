"""Crime zone categorization - incidents inside, bordering or outside a district."""

__version__ = "0.1.0"
