"""Repair and backfill command line for derived trade desk state."""
