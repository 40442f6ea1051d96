"""Image and attachment uploads."""
