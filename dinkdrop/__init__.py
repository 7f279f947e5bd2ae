"""
DinkDrop matchmaking and rating core: queue, ELO, XP/levels, daily challenges.
"""

__version__ = "0.1.0"
