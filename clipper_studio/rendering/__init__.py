"""Rendering layer: style strings, filter builders, and transcoder calls."""
