"""
Questline: quest progression and reward engine for a gamified learning platform.

Turns a student's curriculum into per-user quest attempts at a personalized
difficulty, records activity completions against a difficulty-scoped XP
ledger and dispatches skill rewards.
"""

__version__ = "1.0.0"
