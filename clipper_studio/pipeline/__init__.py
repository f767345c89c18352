"""Batch clip processing: per-clip state machine, titles, and uploads."""
