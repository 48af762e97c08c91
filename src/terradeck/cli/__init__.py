"""Command line interface for TerraDeck."""
