"""Hypothetical Document Embeddings: draft an answer to search with."""

from collections.abc import Sequence

from .config import config
from .generation import GenerationService
from .models import ConversationTurn

logger = config.get_logger(__name__)

HYDE_INSTRUCTION = (
    "You are an expert assistant. Based on the conversation context and the "
    "current question, write a comprehensive hypothetical answer that would "
    "likely contain the information the user is looking for."
)
HYDE_GUIDANCE = (
    "Write a small hypothetical answer that covers the key aspects someone would "
    "typically want to know about this question. This answer will be used to find "
    "relevant documents, so include various terms and concepts that might appear "
    "in relevant documents."
)


def format_history(history: Sequence[ConversationTurn], max_turns: int) -> str:
    """Render the last ``max_turns`` turns as ``Human:``/``Assistant:`` lines.

    Returns:
        The rendered history, or an empty string when there is none.
    """
    if max_turns <= 0:
        return ""
    lines = []
    for turn in list(history)[-max_turns:]:
        speaker = "Human" if turn.role == "user" else "Assistant"
        lines.append(f"{speaker}: {turn.content}")
    return "\n".join(lines)


class HypotheticalAnswerGenerator:
    """Generates a hypothetical answer, falling back to the question itself."""

    def __init__(
        self,
        generation_service: GenerationService,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        min_length: int | None = None,
        history_turns: int | None = None,
    ) -> None:
        self.generation_service = generation_service
        self.max_tokens = max_tokens or config.HYDE_MAX_TOKENS
        self.temperature = (
            temperature if temperature is not None else config.HYDE_TEMPERATURE
        )
        self.min_length = min_length if min_length is not None else config.HYDE_MIN_LENGTH
        self.history_turns = (
            history_turns if history_turns is not None else config.HYDE_HISTORY_TURNS
        )

    def build_prompt(self, question: str, history: Sequence[ConversationTurn] = ()) -> str:
        history_context = format_history(history, self.history_turns)
        sections = [HYDE_INSTRUCTION]
        if history_context:
            sections.append(f"Previous conversation:\n{history_context}")
        sections.append(f"Question: {question}")
        sections.append(HYDE_GUIDANCE)
        sections.append("Hypothetical Answer:")
        return "\n\n".join(sections)

    def generate(self, question: str, history: Sequence[ConversationTurn] = ()) -> str:
        """Draft a hypothetical answer for retrieval.

        Never raises: a model failure or a too-short draft yields the
        original question.

        Returns:
            The hypothetical answer, or ``question`` on fallback.
        """
        prompt = self.build_prompt(question, history)
        try:
            draft = self.generation_service.generate(
                prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception:  # noqa: BLE001
            logger.warning(
                "Hypothetical answer generation failed; using the original question",
                exc_info=True,
            )
            return question

        draft = (draft or "").strip()
        if len(draft) < self.min_length:
            logger.warning(
                "Hypothetical answer too short (%d chars); using the original question",
                len(draft),
            )
            return question

        logger.info("Generated hypothetical answer (%d chars)", len(draft))
        return draft
