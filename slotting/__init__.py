"""Shelf slotting engine: level constraints, occupancy analysis and stock repartition."""

__version__ = "0.1.0"
