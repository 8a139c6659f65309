"""HTTP webhook action."""

from typing import Any, Dict, Literal, Optional

import requests
from pydantic import BaseModel, Field, field_validator

from ..core.action_registry import ActionHandler
from ..core.exceptions import ActionExecutionError, ActionTimeoutError, TransientError
from ..core.logging import get_logger
from ..models.execution import ActionResult, ExecutionContext

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = {408, 425, 429}
MAX_BODY_CHARS = 2000


class WebhookConfig(BaseModel):
    url: str = Field(..., description="Target URL; supports {{path}} placeholders")
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = Field("POST", description="HTTP method")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    body: Optional[Any] = Field(None, description="JSON body, or raw text when a string")
    timeout: float = Field(10.0, gt=0, description="Request timeout in seconds")

    @field_validator('method', mode='before')
    @classmethod
    def upper_method(cls, method):
        return method.upper() if isinstance(method, str) else method

    @field_validator('url')
    @classmethod
    def validate_url(cls, url):
        if not url.startswith(("http://", "https://")):
            raise ValueError("Webhook URL must start with http:// or https://")
        return url


class WebhookHandler(ActionHandler):
    """Calls an HTTP endpoint.

    Connection errors, timeouts, 5xx and throttling responses raise retryable
    errors; other 4xx responses are treated as permanent.
    """

    action_type = "webhook"
    description = "Call an HTTP endpoint with an optional JSON body"
    config_model = WebhookConfig

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()

    def run(self, config: WebhookConfig, context: ExecutionContext) -> ActionResult:
        kwargs: Dict[str, Any] = {"headers": config.headers, "timeout": config.timeout}
        if isinstance(config.body, str):
            kwargs["data"] = config.body
        elif config.body is not None:
            kwargs["json"] = config.body

        try:
            response = self.session.request(config.method, config.url, **kwargs)
        except requests.Timeout:
            raise ActionTimeoutError(self.action_type, config.timeout)
        except requests.RequestException as e:
            raise TransientError(f"Webhook request to {config.url} failed: {e}")

        status = response.status_code
        if status >= 500 or status in RETRYABLE_STATUS_CODES:
            raise TransientError(f"Webhook {config.url} returned HTTP {status}")
        if status >= 400:
            raise ActionExecutionError(
                f"Webhook {config.url} returned HTTP {status}",
                action_type=self.action_type,
                recoverable=False,
            )

        logger.info(f"Webhook {config.method} {config.url} -> {status}")
        return ActionResult(success=True, output={"status_code": status, "body": _response_body(response)})


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:MAX_BODY_CHARS]
