"""Single-pass HTML content filtering for anonymous visitors."""
