"""Biogas plant feasibility calculator service."""
