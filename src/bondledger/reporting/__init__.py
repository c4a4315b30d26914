"""Exports and charts for simulation results."""
