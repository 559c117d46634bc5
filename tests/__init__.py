"""
Questline Test Suite
====================

Test Organization
-----------------
- tests/unit/          : Fast unit tests (pure functions, event bus, config)
- tests/integration/   : Services against a throwaway SQLite database

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test business rules
- Integration tests: Exercise transactions, locking and events end to end
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
