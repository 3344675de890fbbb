from typing import AsyncIterator, Dict, List, Optional
import logging

from openai import AsyncOpenAI, BadRequestError, OpenAIError

from app.modules.governedchat.errors import DownstreamModelError
from core.utils.perf import profile_stage

logger = logging.getLogger(__name__)


async def collect_stream(chunks: AsyncIterator[str]) -> str:
    """Drain a token stream into one string."""
    parts: List[str] = []
    async for chunk in chunks:
        if chunk:
            parts.append(chunk)
    return "".join(parts)


class OpenAIChatModel:
    """
    Chat model over an OpenAI-compatible endpoint.

    For Azure OpenAI ``model`` is the deployment name; for Ollama it is the
    local model tag.
    """

    def __init__(self, client: AsyncOpenAI, model: str, temperature: Optional[float] = 0.7):
        self.client = client
        self.model = model
        self.temperature = temperature

    def _params(self, messages: List[Dict[str, str]], stream: bool) -> Dict:
        params = {"model": self.model, "messages": messages, "stream": stream}
        if self.temperature is not None:
            params["temperature"] = self.temperature
        return params

    async def _create(self, params: Dict):
        try:
            return await self.client.chat.completions.create(**params)
        except BadRequestError as e:
            # Some deployments forbid non-default temperature; retry without it
            if "temperature" in str(e) and "unsupported" in str(e).lower():
                logger.warning(f"[LLM] {self.model} rejected temperature, retrying without it")
                params.pop("temperature", None)
                try:
                    return await self.client.chat.completions.create(**params)
                except OpenAIError as retry_error:
                    raise DownstreamModelError(f"Chat completion failed: {retry_error}") from retry_error
            raise DownstreamModelError(f"Chat completion rejected: {e}") from e
        except OpenAIError as e:
            raise DownstreamModelError(f"Chat completion failed: {e}") from e

    async def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        response = await self._create(self._params(messages, stream=True))
        try:
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except OpenAIError as e:
            raise DownstreamModelError(f"Chat stream interrupted: {e}") from e

    @profile_stage("llm_complete")
    async def complete(self, messages: List[Dict[str, str]]) -> str:
        response = await self._create(self._params(messages, stream=False))
        return (response.choices[0].message.content or "").strip()
