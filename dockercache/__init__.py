"""Mirror the live state of Docker containers into a shared Redis store."""

__version__ = "0.1.0"
