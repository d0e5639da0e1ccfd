"""Slotting engine exceptions."""

from __future__ import annotations


class SlottingError(Exception):
    """Base class for every slotting engine error."""
    pass


class ConfigurationError(SlottingError):
    """Invalid level configuration or settings value."""
    pass


class StoreError(SlottingError):
    """Data store read/write failure."""
    pass


class ListingError(StoreError):
    """Eligible locations could not be listed."""
    pass


class TransactionConflictError(StoreError):
    """A conditional write failed; the whole batch was rolled back."""
    pass


class ExecutionError(SlottingError):
    """A planned move cannot be applied."""
    pass


class InsufficientStockError(ExecutionError):
    """Source level holds less than the requested quantity."""
    pass


class CapacityExceededError(ExecutionError):
    """Destination level would exceed its capacity."""
    pass
