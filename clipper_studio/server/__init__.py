"""HTTP job server for clip batches and caption delivery."""
