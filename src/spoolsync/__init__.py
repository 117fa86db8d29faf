"""Keep OrcaSlicer filament presets in sync with a Spoolman inventory."""

__version__ = "0.1.0"
