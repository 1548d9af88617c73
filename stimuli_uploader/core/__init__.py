"""Core components: configuration, errors, events, retry and upload."""
