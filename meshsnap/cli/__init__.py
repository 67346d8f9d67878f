"""Command-line interface for MeshSnap."""
