"""Shared type aliases for readability."""
from __future__ import annotations

from typing import NewType

UnixSeconds = NewType("UnixSeconds", int)
