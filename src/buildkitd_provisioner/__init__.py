"""Keep a single, correctly versioned buildkitd daemon running for local clients."""

__version__ = "0.1.0"
