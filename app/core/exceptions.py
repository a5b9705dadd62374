"""
Error taxonomy shared by the gateway, the resolvers and the HTTP layer.
Handlers in app.main turn AppError subclasses into JSON responses.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_content(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class QueryError(AppError):
    """Store-level failure: bad SQL, permission denied, network or timeout"""

    def __init__(self, message: str, retryable: bool = False, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.retryable = retryable
        self.cause = cause

    def to_content(self) -> Dict[str, Any]:
        content = super().to_content()
        content["error"] = str(self.cause) if self.cause else self.message
        content["retryable"] = self.retryable
        return content


class SchemaDiscoveryError(QueryError):
    """Sensor-column discovery failed; always downgraded to 'no sensors'"""


class InvalidRequestError(AppError):
    """Malformed or incomplete caller input"""
    status_code = 400


class InvalidTableIdError(InvalidRequestError):
    """A grant's table_id does not have the <project>.<dataset>.<table> shape"""

    def __init__(self, table_id: Optional[str]):
        super().__init__(f"Invalid table_id: {table_id!r}")
        self.table_id = table_id


class DescriptorValidationError(InvalidRequestError):
    """One or more experiment descriptors are missing addressing fields"""

    def __init__(self, invalid_experiments: List[Dict[str, Any]], message: Optional[str] = None):
        super().__init__(message or "Some experiments are missing required fields")
        self.invalid_experiments = invalid_experiments

    def to_content(self) -> Dict[str, Any]:
        content = super().to_content()
        content["invalidExperiments"] = self.invalid_experiments
        return content


class InvalidIdentifierError(InvalidRequestError):
    def __init__(self, identifier: Any, kind: str = "identifier"):
        super().__init__(f"Invalid {kind}: {identifier!r}")
        self.identifier = identifier
