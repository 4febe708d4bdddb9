"""Per-state sliding windows and scoring for the Blockbuster Index."""

__version__ = "0.1.0"
