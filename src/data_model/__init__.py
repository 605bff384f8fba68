"""Shared data model bases."""

from src.data_model.base import StrictBaseModel, WireModel


__all__ = ["StrictBaseModel", "WireModel"]
