"""Core data model, caption segmentation, and media-source resolution."""
