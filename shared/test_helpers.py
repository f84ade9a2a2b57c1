"""
Test helper functions and factory methods for the Access RBAC service.
"""

from typing import Dict, Any, List


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ClaimsFactory:
    """Build claim sets as the token layer would place them on a request."""

    @staticmethod
    def for_role(role_id: Any, user_id: Any = "1001") -> Dict[str, Any]:
        """Claims carrying a role id."""
        return {"sub": str(user_id), "role_id": str(role_id)}

    @staticmethod
    def for_user(user_id: Any) -> Dict[str, Any]:
        """Claims carrying only a subject."""
        return {"sub": str(user_id)}


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def create_grant_rows(role_id: int = 7) -> List[Dict[str, Any]]:
        """Grant rows mixing registered, stale and malformed names."""
        return [
            {"role_id": role_id, "permission_name": "games.read"},
            {"role_id": role_id, "permission_name": "legacy.export"},
            {"role_id": role_id, "permission_name": "not-a-permission"},
            {"role_id": role_id, "permission_name": "too.many.parts"},
        ]


# Global instances for easy access
test_data_factory = TestDataFactory()
claims_factory = ClaimsFactory()
