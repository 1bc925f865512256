"""Answer synthesis from retrieved context and conversation turn handling."""

from collections.abc import Sequence

from .config import config
from .errors import GenerationError, InputValidationError
from .generation import GenerationService
from .hyde import format_history
from .models import ChatAnswer, ConversationTurn, RetrievedResult, SourceSnippet
from .retrieval import RetrievalOrchestrator

logger = config.get_logger(__name__)

NO_RESULTS_RESPONSE = (
    "I couldn't find relevant information in the uploaded document "
    "to answer your question."
)
CONTEXT_SEPARATOR = "\n\n---\n\n"


class AnswerSynthesizer:
    """Builds the grounded prompt and produces the final answer."""

    def __init__(
        self,
        generation_service: GenerationService,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        history_turns: int | None = None,
    ) -> None:
        self.generation_service = generation_service
        self.max_tokens = max_tokens or config.CHAT_MAX_TOKENS
        self.temperature = (
            temperature if temperature is not None else config.CHAT_TEMPERATURE
        )
        self.history_turns = (
            history_turns if history_turns is not None else config.ANSWER_HISTORY_TURNS
        )

    @staticmethod
    def build_context(results: Sequence[RetrievedResult]) -> str:
        return CONTEXT_SEPARATOR.join(
            f"[Source {i}] (Relevance: {result.score:.3f})\n{result.chunk.content}"
            for i, result in enumerate(results, start=1)
        )

    def build_prompt(
        self,
        question: str,
        history: Sequence[ConversationTurn],
        results: Sequence[RetrievedResult],
    ) -> str:
        """Build the answer prompt with context, history and instructions.

        Returns:
            str: The prompt sent to the model.
        """
        history_context = format_history(history, self.history_turns)
        history_block = (
            f"Previous conversation:\n{history_context}\n\n" if history_context else ""
        )

        return (
            "You are a smart assistant. Your job is to answer the user's question "
            "based on the provided context and conversation history.\n\n"
            f"Context from documents:\n{self.build_context(results)}\n\n"
            f"{history_block}"
            f"Current question: {question}\n\n"
            "Instructions:\n"
            "- Answer based primarily on the provided context\n"
            "- If the answer cannot be found in the context, say so clearly\n"
            "- Be concise but comprehensive\n"
            "- When providing links, use this format: [Link name](url)\n"
            "- Cite which sources you're referencing when possible "
            '(e.g., "According to Source 1...")\n'
            "- If multiple sources contradict each other, mention this\n\n"
            "Answer:"
        )

    def synthesize(
        self,
        question: str,
        history: Sequence[ConversationTurn],
        results: Sequence[RetrievedResult],
    ) -> str:
        """Generate the final answer.

        Returns:
            The model's answer with surrounding whitespace trimmed.

        Raises:
            GenerationError: If the model call fails.
        """
        prompt = self.build_prompt(question, history, results)
        try:
            answer = self.generation_service.generate(
                prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as exc:
            logger.exception("Error generating final response")
            msg = "Failed to generate response"
            raise GenerationError(msg) from exc

        return (answer or "").strip()


class ConversationManager:
    """Handles one chat turn: retrieve, then answer with cited sources."""

    def __init__(
        self,
        orchestrator: RetrievalOrchestrator,
        synthesizer: AnswerSynthesizer,
        preview_length: int | None = None,
    ) -> None:
        """Initialize ConversationManager.

        Args:
            orchestrator: Retrieval orchestrator used to find context.
            synthesizer: Answer synthesizer used for the final response.
            preview_length: Characters of each chunk shown as a source preview.
        """
        self.orchestrator = orchestrator
        self.synthesizer = synthesizer
        self.preview_length = preview_length or config.SOURCE_PREVIEW_LENGTH

    def build_snippets(self, results: Sequence[RetrievedResult]) -> list[SourceSnippet]:
        return [
            SourceSnippet(
                content=result.chunk.content[: self.preview_length] + "...",
                metadata=dict(result.chunk.metadata),
                score=result.score,
            )
            for result in results
        ]

    def answer_question(
        self,
        question: str,
        collection_ids: Sequence[str],
        history: Sequence[ConversationTurn] = (),
        *,
        use_hyde: bool = True,
    ) -> ChatAnswer:
        """Answer a question from the given collections.

        Returns:
            ChatAnswer: The answer, its sources and the hypothetical answer
                used for retrieval, if any.

        Raises:
            InputValidationError: If the question or collection list is empty.
        """
        if not question or not question.strip():
            msg = "Message is required"
            raise InputValidationError(msg)
        if not collection_ids:
            msg = "At least one collection ID is required"
            raise InputValidationError(msg)

        logger.info("Processing question: %s", question)
        outcome = self.orchestrator.retrieve(
            question,
            collection_ids,
            history,
            use_hyde=use_hyde,
        )

        if not outcome.found:
            logger.info("No relevant chunks found for question")
            return ChatAnswer(
                answer=NO_RESULTS_RESPONSE,
                sources=[],
                hypothetical_answer=outcome.hypothetical_answer,
                found=False,
            )

        answer = self.synthesizer.synthesize(question, history, outcome.results)

        for i, result in enumerate(outcome.results, start=1):
            logger.info(
                "  Context %d: %s (score: %.4f)",
                i,
                result.chunk.metadata.get("source"),
                result.score,
            )

        return ChatAnswer(
            answer=answer,
            sources=self.build_snippets(outcome.results),
            hypothetical_answer=outcome.hypothetical_answer,
            found=True,
        )
