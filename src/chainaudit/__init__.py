"""chainaudit — smart-contract vulnerability detection and consensus analysis."""

__version__ = "0.1.0"
