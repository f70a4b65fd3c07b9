"""Scenario configuration models and loaders."""
