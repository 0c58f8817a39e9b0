"""
Group membership and poll voting service.

Groups are joined with a shared invite code; members run time-boxed polls
over catalogued activities and cast one vote each.
"""

__version__ = "0.1.0"
