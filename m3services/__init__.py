"""API service classes (records, currency, markets, geocoding, greeting) with publishing and TypeScript client tools."""

__version__ = "0.1.0"