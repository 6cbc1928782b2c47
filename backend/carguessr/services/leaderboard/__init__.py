"""Persisted leaderboard and the legacy JSON import."""
