from typing import Optional

from .openai import OpenAIAdapter


class GrokAdapter(OpenAIAdapter):
    """
    Adapter for xAI Grok (OpenAI Responses API compatible).
    """

    provider_id = "grok"
    display_name = "Grok"
    default_base_url = "https://api.x.ai/v1"
    connection_test_model = "grok-3-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        super().__init__(api_key=api_key, base_url=base_url)
