"""
Integration tests.

End-to-end flows through the local agent, the session manager, the queue and
the mock backend, all in one process. No external services required.
"""
