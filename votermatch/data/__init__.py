"""Static reference tables for nickname and metro-area resolution."""

from .reference_loader import ReferenceDataLoader, MetroArea, reference_data

__all__ = ['ReferenceDataLoader', 'MetroArea', 'reference_data']
