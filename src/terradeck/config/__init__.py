"""Configuration loading and validation for the TerraDeck orchestrator.

Main components:
- ConfigLoader: Resolve settings from CLI flags, terradeck.yaml and
  TERRADECK_* environment variables
- Default values and tool install hints
"""

from terradeck.config.loader import ConfigLoader

__all__ = ["ConfigLoader"]
