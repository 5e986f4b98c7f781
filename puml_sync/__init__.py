"""Keep PlantUML diagrams embedded in markdown in sync with rendered assets."""

from __future__ import annotations

__version__ = "0.3.0"
