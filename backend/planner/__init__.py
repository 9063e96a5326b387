"""Insanus Planner scheduling backend."""
