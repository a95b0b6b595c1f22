"""Lifecycle consistency and rollup engine for a chartering trade desk."""
