"""zkceremony - coordinator for multi-party trusted setup ceremonies."""

__version__ = "0.1.0"
