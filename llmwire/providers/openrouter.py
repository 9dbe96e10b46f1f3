from typing import Dict, Optional

from .openai import OpenAIAdapter


class OpenRouterAdapter(OpenAIAdapter):
    """
    Adapter for OpenRouter (OpenAI Responses API compatible).

    OpenRouter attributes traffic to an application through the optional
    ``HTTP-Referer`` and ``X-Title`` headers.
    """

    provider_id = "openrouter"
    display_name = "OpenRouter"
    default_base_url = "https://openrouter.ai/api/v1"
    connection_test_model = "openai/gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_referer: Optional[str] = None,
        app_title: Optional[str] = None,
    ):
        """
        Initialize OpenRouterAdapter.
        """
        super().__init__(api_key=api_key, base_url=base_url)
        self.http_referer = http_referer
        self.app_title = app_title

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.http_referer:
            headers["HTTP-Referer"] = self.http_referer
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers
