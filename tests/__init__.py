# loginflow Test Suite
"""
Test suite including:
- Unit tests (tokens, credentials, hooks, factors)
- Login state machine tests
- Integration tests
- Security tests (invalid inputs, forgery, replay)

Run with: pytest
"""
