"""Concrete implementations of the chart engine's external collaborators."""
