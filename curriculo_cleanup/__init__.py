"""Prune expired and duplicate résumé submissions from a GitHub-hosted index."""
