from storefront.http.client import ApiClient
from storefront.http.errors import ApiError, SessionExpiredError
from storefront.http.request import ApiRequest

__all__ = ["ApiClient", "ApiError", "ApiRequest", "SessionExpiredError"]
