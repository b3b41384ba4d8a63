"""
Service-layer exceptions
"""
from typing import Optional


class ServiceNotConfiguredError(Exception):
    """A required group of credentials is missing from the environment"""


class LLMServiceError(Exception):
    """The completion API call failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PowerBIServiceError(Exception):
    """Token acquisition, REST call or DAX execution against Power BI failed"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[str] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = details
