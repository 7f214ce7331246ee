"""Command-line entry points for price-provider."""
