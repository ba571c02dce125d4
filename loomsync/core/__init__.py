"""loomsync core."""
