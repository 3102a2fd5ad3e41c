"""Tracking pipeline services."""
