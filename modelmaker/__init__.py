"""Models, persistence, services and Flask handlers for a photogrammetry task backend."""

__version__ = "0.1.0"