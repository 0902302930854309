"""Data models for the NAP registry.

This package contains Pydantic models for the spreadsheet-backed entities:
- BaseDataModel: Base class with common configuration
- Nap: A registered NAP cabinet
- NapCreate / NapUpdate: Payloads for adding and validating NAPs
"""

from src.models.base import BaseDataModel
from src.models.nap import Coordinates, Nap, NapCreate, NapStatus, NapUpdate

__all__ = [
    "BaseDataModel",
    "Coordinates",
    "Nap",
    "NapCreate",
    "NapStatus",
    "NapUpdate",
]
