"""
Table-tennis club backend: members, Elo ladder, match approval workflow,
club tournament, leaderboards and categories, claim codes, schedule and photos.
"""

__version__ = "1.0.0"
