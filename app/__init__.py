"""CROWDWATCH - Crowd Safety Operations Center."""
