"""ÖBB next-trains proxy with tiered acquisition and a synthetic fallback."""

__version__ = "4.2.0"
