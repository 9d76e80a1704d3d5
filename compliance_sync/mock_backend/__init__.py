from compliance_sync.mock_backend.app import create_mock_backend
from compliance_sync.mock_backend.state import TEST_USERS, MockBackendState

__all__ = ["TEST_USERS", "MockBackendState", "create_mock_backend"]
