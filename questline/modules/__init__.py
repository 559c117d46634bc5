"""
Domain modules.

- shared: service/repository base classes and domain exceptions
- quest: quest line generation, activity progress tracking and skill rewards
"""
