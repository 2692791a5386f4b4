"""Plotting helpers for simulated responses."""
