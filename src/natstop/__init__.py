"""natstop - live terminal dashboard for NATS server monitoring endpoints."""

__version__ = "0.1.0"
