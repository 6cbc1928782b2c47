"""Game domain services: sessions, scoring, leaderboard and challenges.

This package contains the game rules that HTTP routes and socket handlers
call into, keeping transport concerns separated from core game mechanics.
"""
