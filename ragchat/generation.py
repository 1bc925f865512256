"""OpenAI chat completion service used for HyDE and answer generation."""

from openai import OpenAI

from .config import config

logger = config.get_logger(__name__)


class GenerationService:
    """Stateless single-prompt text generation."""

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        """Initialize the GenerationService.

        Args:
            api_key: OpenAI API key. If None,
                reads from OPENAI_API_KEY environment variable.
            model: Chat model name. If None, uses config.CHAT_MODEL.
        """
        default_headers = config.get_api_headers()
        self.client = OpenAI(
            api_key=api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
            timeout=config.REQUEST_TIMEOUT,
            max_retries=config.OPENAI_MAX_RETRIES,
        )
        self.model = model or config.CHAT_MODEL

    def generate(self, prompt: str, *, max_tokens: int, temperature: float) -> str:
        """Send ``prompt`` as a single user message.

        Returns:
            The completion text, empty when the model returned nothing.
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception:
            logger.exception("Error generating completion with %s", self.model)
            raise
        else:
            return response.choices[0].message.content or ""
