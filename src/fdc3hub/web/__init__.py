"""FastAPI transport for the fdc3hub broker."""
