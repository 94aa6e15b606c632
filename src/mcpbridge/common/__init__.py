"""Common types shared across the bridge."""
