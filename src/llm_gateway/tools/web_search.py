"""
Web search tool backed by the OpenAI Responses API.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from ..core.client import ProviderClient
from ..core.config import ProviderConfig
from ..models.tools import ToolDefinition

logger = logging.getLogger(__name__)

WEB_SEARCH_PARAMETERS = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "minLength": 1,
            "description": "The search query to look up.",
        },
    },
    "required": ["query"],
}


class WebSearch:
    """
    Runs a query through a model with the ``web_search_preview`` tool.
    """

    def __init__(self, client: ProviderClient, provider: ProviderConfig, model: str = "gpt-4.1"):
        self.client = client
        self.provider = provider
        self.model = model

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="webSearch",
            description="Search the web for current information on a given query.",
            parameters=WEB_SEARCH_PARAMETERS,
            handler=self.search,
        )

    async def search(self, arguments: Dict[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
        query = arguments["query"]
        logger.info(f"Executing web search for query: {query}")

        data = await self.client.invoke(
            f"{self.provider.base_url.rstrip('/')}/responses",
            {
                "model": self.model,
                "tools": [{"type": "web_search_preview"}],
                "input": query,
            },
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.provider.api_key}",
            },
            provider=self.provider.name,
        )

        results = _output_text(data)
        logger.info(f"Web search completed, {len(results)} chars")
        return {
            "query": query,
            "results": results,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def _output_text(data: Dict[str, Any]) -> str:
    """Text of the message items in a Responses API result."""
    if data.get("output_text"):
        return data["output_text"]

    texts = []
    for item in data.get("output") or []:
        if item.get("type") != "message":
            continue
        for part in item.get("content") or []:
            if part.get("type") == "output_text" and part.get("text"):
                texts.append(part["text"])
    return "\n".join(texts) or "No results found."
