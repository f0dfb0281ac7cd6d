"""Typed webhook failures raised at the route boundary.

They subclass HTTPException so FastAPI renders them as {"detail": ...} with the
right status code and handlers can raise them directly.
"""

from fastapi import HTTPException


class WebhookError(HTTPException):
    """Base class for webhook rejections."""

    status_code_default = 400

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=detail)


class WebhookAuthenticationError(WebhookError):
    """Signature, timestamp or token did not check out."""

    status_code_default = 401


class WebhookBadRequestError(WebhookError):
    """Misconfiguration or a request we cannot interpret."""

    status_code_default = 400


class MalformedPayloadError(WebhookBadRequestError):
    def __init__(self, detail: str = "Invalid JSON body"):
        super().__init__(detail)


class IntegrationNotFoundError(WebhookError):
    """No integration, or only a disconnected one, for the addressed organization."""

    status_code_default = 404

    def __init__(self, detail: str = "Integration not found"):
        super().__init__(detail)


class RepositoryNotFoundError(WebhookError):
    status_code_default = 404

    def __init__(self, detail: str = "Repository not found"):
        super().__init__(detail)
