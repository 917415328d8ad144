'''
Lead Router Test Suite

Test Modules:
-------------
- test_normalization.py: value coercion per field type, required-field
  errors, schema minimums, board item mapping
- test_rule_engine.py: comparators, priority order, explainability
- test_scoring.py: component scores, weights, toggles, bands
- test_write_queue.py: priority/FIFO order, sliding-window rate limit,
  backoff and Retry-After, deduplication, drain on close
- test_monday_client.py: GraphQL payloads and error classification
- test_writeback.py: column payloads and write-back ordering
- test_people.py: assignee resolution and user cache
- test_routing_state.py: asyncpg repositories against a mocked pool
- test_proposals.py: orchestrator, state machine, exactly-once apply
- test_api.py: HTTP endpoints and error responses

Running Tests:
--------------
    pip install -e ".[test]"
    pytest -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

# All tests live in the individual modules
# This file enables pytest discovery of the tests directory

__all__ = []
