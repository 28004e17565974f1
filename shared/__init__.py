"""Code shared across the Crop Health Monitor tools."""
