"""HabitForge - habit tracking API with XP, streaks, community circles and AI coaching"""

__version__ = "1.0.0"
