"""Shared Meta Graph API plumbing for the Instagram and Facebook adapters."""

from typing import Any, Dict

from crosspost.exceptions import PublishError
from crosspost.platforms.base import TextPostAdapter, permanent, transient

GRAPH_API_URL = "https://graph.facebook.com/v20.0"

# https://developers.facebook.com/docs/graph-api/guides/error-handling
RATE_LIMIT_CODES = frozenset({4, 17, 32, 613})
UNAVAILABLE_CODES = frozenset({1, 2})
AUTH_CODES = frozenset({102, 190})
PERMISSION_CODES = frozenset({10, 200, 298})
INVALID_PARAMETER_CODE = 100


class GraphAPIAdapter(TextPostAdapter):
    """Text adapter speaking the Graph API error dialect."""

    def classify_error(self, status_code: int, payload: Dict[str, Any]) -> PublishError:
        error = payload.get("error") or {}
        code = error.get("code")
        message = str(error.get("message", ""))

        if code in RATE_LIMIT_CODES or status_code == 429:
            return transient(self.platform, "rate_limited", message, status_code)
        if error.get("is_transient") or code in UNAVAILABLE_CODES:
            return transient(self.platform, "provider_unavailable", message, status_code)
        if code in AUTH_CODES:
            return permanent(self.platform, "auth_revoked", message, status_code)
        if code in PERMISSION_CODES or (isinstance(code, int) and 200 <= code < 300):
            return permanent(self.platform, "permission_denied", message, status_code)
        if code == INVALID_PARAMETER_CODE:
            return permanent(self.platform, "invalid_content", message, status_code)
        if status_code >= 500:
            return transient(self.platform, "provider_unavailable", message, status_code)
        return permanent(self.platform, "rejected", message, status_code)

    async def _graph(self, method: str, path: str, access_token: str, **kwargs: Any) -> Dict[str, Any]:
        params = dict(kwargs.pop("params", None) or {})
        params["access_token"] = access_token
        response = await self._request(method, f"{GRAPH_API_URL}/{path}", params=params, **kwargs)
        return response.json()
