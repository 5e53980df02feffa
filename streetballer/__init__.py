"""StreetBaller backend: peer-verified street football match results."""

__version__ = "0.1.0"
