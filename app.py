"""Web interface using Streamlit."""

import uuid

import streamlit as st

from ragchat import ConversationTurn, SourceInput, SourceType, build_services
from ragchat.config import config
from ragchat.errors import GenerationError, RAGChatError, RetrievalError

UPLOAD_TYPES = {
    "pdf": SourceType.PDF,
    "docx": SourceType.DOCX,
    "txt": SourceType.TEXT,
    "md": SourceType.TEXT,
    "csv": SourceType.CSV,
    "json": SourceType.JSON,
}

config.setup_logging()
logger = config.get_logger(__name__)


class SessionState:
    """Centralized session state management."""

    @staticmethod
    def initialize() -> None:
        """Initialize all session state variables."""
        defaults = {
            "services": None,
            "session_id": str(uuid.uuid4()),
            "messages": [],
            "use_hyde": True,
            "last_answer": None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

    @staticmethod
    def clear_history() -> None:
        st.session_state.messages = []
        st.session_state.last_answer = None

    @staticmethod
    def is_system_ready() -> bool:
        """Check if the services have been built.

        Returns:
            bool: True if the services are initialized, False otherwise.
        """
        return st.session_state.get("services") is not None

    @staticmethod
    def active_sources() -> list:
        services = st.session_state.services
        return services.tracker.sources(st.session_state.session_id)


def validate_configuration() -> bool:
    """Validate application configuration and show user feedback.

    Returns:
        bool: True if configuration is valid, False otherwise.
    """
    try:
        config.validate()
    except ValueError as e:
        st.error(f"Configuration Error: {e}")
        return False
    else:
        return True


def initialize_system() -> bool:
    """Build the ingestion and chat services.

    Returns:
        bool: True if initialization succeeds, False otherwise.
    """
    try:
        with st.spinner("Initializing system..."):
            st.session_state.services = build_services()

        logger.info("RAG system initialized successfully")
        st.success("System initialized successfully!")

    except (ValueError, RuntimeError, OSError) as e:
        logger.exception("Failed to initialize system")
        st.error(f"Failed to initialize system: {e}")
        return False
    else:
        return True


def ingest_source(source: SourceInput, label: str) -> bool:
    """Run a submission through the ingestion pipeline.

    Returns:
        bool: True if the source was indexed, False otherwise.
    """
    pipeline = st.session_state.services.pipeline
    try:
        with st.spinner(f"Processing '{label}'... This may take a few moments."):
            result = pipeline.ingest(source, session_id=st.session_state.session_id)
    except RAGChatError as e:
        logger.warning("Document processing failed: %s", e)
        st.error(f"Failed to process document: {e}")
        return False
    except Exception:
        logger.exception("Unexpected error processing %s", label)
        st.error("Failed to process document. Please try again.")
        return False

    st.success(
        f"'{result.source}' processed successfully ({result.chunk_count} chunks)."
    )
    return True


def render_sidebar() -> None:
    """Render the sidebar with configuration, sources and system status."""
    with st.sidebar:
        st.header("System Configuration")

        if (
            st.button("Initialize System", use_container_width=True)
            and validate_configuration()
            and initialize_system()
        ):
            st.rerun()

        st.divider()
        st.subheader("System Status")
        config_status = "Valid" if validate_configuration() else "Invalid"
        st.write(f"**Configuration:** {config_status}")
        if not SessionState.is_system_ready():
            st.write("**System:** Not Initialized")
            return
        st.write("**System:** Ready")

        st.session_state.use_hyde = st.toggle(
            "Use HyDE retrieval",
            value=st.session_state.use_hyde,
            help="Search with a hypothetical answer instead of the raw question.",
        )

        st.divider()
        render_sources()

        st.divider()
        st.subheader("Conversation")
        if st.button("Clear History", use_container_width=True):
            SessionState.clear_history()
            st.success("Conversation cleared!")
            st.rerun()


def render_sources() -> None:
    """List the session's sources with a remove button each."""
    services = st.session_state.services
    session_id = st.session_state.session_id
    sources = SessionState.active_sources()

    st.subheader(f"Sources ({len(sources)}/{services.tracker.max_sources})")
    if not sources:
        st.caption("No sources uploaded yet.")
        return

    for record in sources:
        col1, col2 = st.columns([4, 1])
        with col1:
            st.markdown(
                f"**{record.source}**  \n"
                f"{record.source_type.value} - {record.chunk_count} chunks"
            )
        with col2:
            if st.button("Remove", key=f"remove-{record.collection_id}"):
                try:
                    services.pipeline.delete_source(
                        record.collection_id, session_id=session_id
                    )
                except RAGChatError as e:
                    logger.exception("Failed to remove source")
                    st.error(f"Failed to remove source: {e}")
                else:
                    st.rerun()


def render_document_upload() -> None:
    """Render the upload tabs for files, pasted text and URLs."""
    st.header("Add Sources")
    services = st.session_state.services
    remaining = services.tracker.remaining(st.session_state.session_id)
    if remaining == 0:
        st.warning(
            f"Upload limit reached ({services.tracker.max_sources} sources). "
            "Remove a source from the sidebar to add another."
        )
        return

    file_tab, text_tab, url_tab = st.tabs(["File", "Text", "Website / YouTube"])

    with file_tab:
        uploaded_file = st.file_uploader(
            "Upload a document",
            type=list(UPLOAD_TYPES),
            help="PDF, DOCX, TXT, Markdown, CSV or JSON",
        )
        if uploaded_file and st.button("Process Document", use_container_width=True):
            extension = uploaded_file.name.rsplit(".", 1)[-1].lower()
            source = SourceInput(
                source_type=UPLOAD_TYPES[extension],
                data=uploaded_file.getvalue(),
                filename=uploaded_file.name,
                mime_type=uploaded_file.type,
            )
            if ingest_source(source, uploaded_file.name):
                st.rerun()

    with text_tab:
        text = st.text_area("Paste text", height=200)
        if st.button("Process Text", use_container_width=True):
            source = SourceInput(source_type=SourceType.TEXT, text=text)
            if ingest_source(source, "text input"):
                st.rerun()

    with url_tab:
        url = st.text_input("Web page or YouTube URL", placeholder="https://...")
        if st.button("Process URL", use_container_width=True):
            source = SourceInput(source_type=SourceType.URL, text=url)
            if ingest_source(source, url):
                st.rerun()


def render_chat_interface() -> None:
    """Render the chat history and handle a new question."""
    collection_ids = [record.collection_id for record in SessionState.active_sources()]
    if not collection_ids:
        st.info("Upload a source to start asking questions.")
        return

    st.header("Ask Questions About Your Sources")
    for message in st.session_state.messages:
        with st.chat_message(message.role):
            st.markdown(message.content)

    question = st.chat_input("Ask anything about your uploaded sources...")
    if not question:
        render_debug_info()
        return

    with st.chat_message("user"):
        st.markdown(question)

    conversation = st.session_state.services.conversation
    with st.chat_message("assistant"), st.spinner("Processing..."):
        try:
            answer = conversation.answer_question(
                question,
                collection_ids,
                st.session_state.messages,
                use_hyde=st.session_state.use_hyde,
            )
        except (RetrievalError, GenerationError):
            logger.exception("Question processing failed")
            st.error("Failed to generate response. Please try again.")
            return
        st.markdown(answer.answer)

    st.session_state.messages.extend(
        [
            ConversationTurn(role="user", content=question),
            ConversationTurn(role="assistant", content=answer.answer),
        ]
    )
    st.session_state.last_answer = answer
    render_debug_info()


def render_debug_info() -> None:
    """Show the sources and hypothetical answer behind the last response."""
    answer = st.session_state.last_answer
    if answer is None:
        return

    if answer.hypothetical_answer:
        with st.expander("Hypothetical Answer (Debug)", expanded=False):
            st.write(answer.hypothetical_answer)

    if answer.sources:
        with st.expander("Retrieved Sources (Debug)", expanded=False):
            for i, snippet in enumerate(answer.sources, start=1):
                st.write(
                    f"Source {i} (Relevance: {snippet.score:.3f}) from "
                    f"{snippet.metadata.get('source', 'unknown')}:"
                )
                st.code(snippet.content)


def render_system_info() -> None:
    """Render system information footer."""
    st.markdown("---")
    col1, col2, col3 = st.columns(3)

    with col1:
        st.markdown("**Embedding Model**")
        st.markdown(f"**{config.EMBEDDING_MODEL}**")

    with col2:
        st.markdown("**Chat Model**")
        st.markdown(f"**{config.CHAT_MODEL}**")

    with col3:
        st.markdown("**Chunk Size / Overlap**")
        st.markdown(f"**{config.CHUNK_SIZE} / {config.CHUNK_OVERLAP}**")

    with st.expander("How HyDE Retrieval Works", expanded=False):
        st.markdown("""
        **Hypothetical Document Embeddings (HyDE)** improve retrieval for short
        or vague questions:

        1. **Draft**: the chat model writes a hypothetical answer to your question
        2. **Embed**: the draft is embedded instead of the bare question
        3. **Retrieve**: the closest passages of your sources are found by
           cosine similarity
        4. **Answer**: the model answers from those passages, citing them as
           Source 1, Source 2, ...

        If drafting fails, retrieval falls back to your original question.
        """)


def main() -> None:
    """Main entry point for the Streamlit web application."""
    st.set_page_config(page_title="RAGChat", layout="wide")

    SessionState.initialize()

    st.title("RAGChat - Chat With Your Documents")
    st.markdown("---")

    render_sidebar()

    if not SessionState.is_system_ready():
        st.info("Please initialize the system using the sidebar to get started.")
        return

    render_document_upload()
    render_chat_interface()
    render_system_info()


if __name__ == "__main__":
    main()
