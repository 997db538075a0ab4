"""Property type handler implementations."""
