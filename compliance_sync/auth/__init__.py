from compliance_sync.auth.session_manager import SessionManager

__all__ = ["SessionManager"]
