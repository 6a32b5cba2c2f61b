"""
ticket-branch.

Creates a git branch for an issue tracker ticket, based on the parent
ticket's branch, the maintenance branch of its target version, or the
default integration branch.
"""

__version__ = "1.0.0"
