"""Reelcast adaptive video delivery backend."""
