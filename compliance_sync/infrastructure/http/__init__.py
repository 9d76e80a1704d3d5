from compliance_sync.infrastructure.http.api_client import ComplianceApiClient, parse_response

__all__ = ["ComplianceApiClient", "parse_response"]
