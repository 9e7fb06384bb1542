"""Main Streamlit application for the filing assistant"""

import os

# Set these BEFORE torch / tokenizers are imported
os.environ["OMP_NUM_THREADS"] = "1"
os.environ["MKL_NUM_THREADS"] = "1"
os.environ["OPENBLAS_NUM_THREADS"] = "1"
os.environ["VECLIB_MAXIMUM_THREADS"] = "1"
os.environ["TOKENIZERS_PARALLELISM"] = "false"

import logging
from typing import List

import streamlit as st

from filing_assistant.config import (
    DEFAULT_TICKERS,
    EMBEDDING_BACKEND,
    MAX_TOP_K,
    MIN_TOP_K,
    OPENAI_API_KEY,
    UI_TOP_K,
)
from filing_assistant.core.embedding_manager import EmbeddingManager, create_provider
from filing_assistant.core.llm_client import ChatModel
from filing_assistant.core.rag_system import RAGSystem
from filing_assistant.exceptions import FilingAssistantError
from filing_assistant.logger import configure_logging
from filing_assistant.models.document_chunk import IngestionState, IngestionStatus, UploadedDocument

configure_logging()
logger = logging.getLogger(__name__)

BACKENDS = ["huggingface", "local"]


def initialize_session_state():
    """Initialize session state variables"""
    if "rag_system" not in st.session_state:
        st.session_state.rag_system = None
    if "system_key" not in st.session_state:
        st.session_state.system_key = None
    if "statuses" not in st.session_state:
        st.session_state.statuses = []
    if "query_history" not in st.session_state:
        st.session_state.query_history = []


def get_rag_system(api_key: str, backend: str):
    """Build the RAG system once per (key, backend) pair"""
    key = (api_key, backend)
    if st.session_state.rag_system is None or st.session_state.system_key != key:
        try:
            st.session_state.rag_system = RAGSystem(
                embedding_manager=EmbeddingManager(create_provider(backend)),
                chat_model=ChatModel(api_key=api_key or None),
            )
            st.session_state.system_key = key
        except FilingAssistantError as e:
            logger.error("System setup failed: %s", e)
            st.error(f"❌ {e}")
            st.session_state.rag_system = None
    return st.session_state.rag_system


def render_sidebar():
    """Render the sidebar with configuration and upload"""
    with st.sidebar:
        st.header("🔑 Configuration")

        api_key = st.text_input(
            "Enter your OpenAI API Key",
            type="password",
            value=OPENAI_API_KEY,
            placeholder="sk-proj-...",
            help="Get your API key from https://platform.openai.com/api-keys",
        )
        if api_key:
            st.success("✅ OpenAI API Key Provided")
        else:
            st.warning("⚠️ No API Key - answers and analysis are disabled")

        backend = st.selectbox(
            "Embedding backend:",
            options=BACKENDS,
            index=BACKENDS.index(EMBEDDING_BACKEND) if EMBEDDING_BACKEND in BACKENDS else 0,
            help="""
            • huggingface: hosted inference endpoint (needs HUGGINGFACE_API_KEY)
            • local: sentence-transformers model on this machine
            """,
        )

        top_k = st.slider(
            "Chunks to retrieve:",
            min_value=MIN_TOP_K,
            max_value=MAX_TOP_K,
            value=UI_TOP_K,
            step=1,
            help="Number of chunks used to generate each answer",
        )

        st.divider()

        rag_system = get_rag_system(api_key, backend)

        st.header("📄 Document Upload")
        uploaded_files = st.file_uploader(
            "Upload PDF filings",
            type=["pdf"],
            accept_multiple_files=True,
            help="10-K, 10-Q or earnings documents",
        )

        if uploaded_files and rag_system is not None:
            if st.button("🚀 Process Documents", type="primary"):
                process_uploads(rag_system, uploaded_files)

        render_upload_statuses(st.session_state.statuses)
        render_system_status(rag_system)

        return rag_system, top_k


def process_uploads(rag_system: RAGSystem, uploaded_files):
    """Ingest the uploaded files, showing per-file progress"""
    uploads = [
        UploadedDocument(name=f.name, data=f.getvalue(), content_type=f.type or "")
        for f in uploaded_files
    ]
    bars = {u.name: st.progress(0, text=f"{u.name}: Queued") for u in uploads}

    def on_status(status: IngestionStatus):
        bar = bars.get(status.file_name)
        if bar is not None:
            bar.progress(status.progress, text=f"{status.file_name}: {status.label}")

    with st.spinner("Indexing documents..."):
        statuses = rag_system.ingest_uploads(uploads, on_status=on_status)
    st.session_state.statuses = statuses

    if any(s.state == IngestionState.INDEXED for s in statuses):
        st.success("✅ Documents processed!")
        st.rerun()


def render_upload_statuses(statuses: List[IngestionStatus]):
    if not statuses:
        return
    st.subheader("Last upload")
    for status in statuses:
        icon = "❌" if status.failed else "✅"
        line = f"{icon} {status.file_name} ({status.size / 1024:.1f} KB): {status.label}"
        if status.tickers:
            line += f" · tickers: {', '.join(status.tickers)}"
        st.write(line)
        if status.message:
            st.caption(status.message)


def render_system_status(rag_system):
    """Render system status in sidebar"""
    st.header("📊 System Status")

    if rag_system is None:
        st.warning("🟡 Configure an embedding backend to get started")
        return

    try:
        stats = rag_system.get_system_stats()
    except FilingAssistantError as e:
        st.error(f"❌ {e}")
        return

    col1, col2 = st.columns(2)
    with col1:
        st.metric("Total Chunks", stats["total_chunks"])
    with col2:
        st.metric("Documents", stats["total_documents"])
    st.caption(f"Embedding model: {stats['model_name']}")

    documents = rag_system.list_documents()
    if documents:
        st.subheader("📄 Documents Loaded:")
    for doc in documents:
        col1, col2 = st.columns([4, 1])
        with col1:
            st.write(f"• {doc.title}: {stats['documents'].get(doc.id, 0)} chunks")
        with col2:
            if st.button("🗑️", key=f"delete_{doc.id}", help="Delete this document"):
                rag_system.delete_document(doc.id)
                st.rerun()


def render_query_interface(rag_system: RAGSystem, top_k: int):
    """Render the main query interface"""
    st.header("💬 Ask Questions About Your Filings")

    documents = rag_system.list_documents()
    options = {"All documents": None}
    options.update({f"{d.title} ({d.id[:8]})": d.id for d in documents})
    selected = st.selectbox("Search in:", options=list(options.keys()))
    document_id = options[selected]

    query = st.text_area(
        "Enter your question:",
        placeholder="e.g., What drove the change in operating margin?",
        height=100,
    )

    col1, col2 = st.columns(2)
    with col1:
        ask = st.button("🔍 Get Answer", type="primary")
    with col2:
        summarize = st.button("🧾 Summarize document", disabled=document_id is None)

    try:
        if ask:
            if not query.strip():
                st.warning("Please enter a question before searching.")
            else:
                with st.spinner("🔍 Searching documents and generating answer..."):
                    result = rag_system.ask(query, document_id=document_id, top_k=top_k)
                st.subheader("📝 Answer")
                st.markdown(result.answer)
                render_citations(result.citations)
                if query not in st.session_state.query_history:
                    st.session_state.query_history.append(query)
        elif summarize:
            with st.spinner("Summarizing..."):
                st.subheader("🧾 Summary")
                st.markdown(rag_system.summarize(document_id))
    except FilingAssistantError as e:
        st.error(f"❌ {e}")

    render_query_history()


def render_citations(citations):
    """Render source information section"""
    st.subheader("📚 Sources")
    st.caption(f"{len(citations)} document sections used to generate the answer")
    for i, match in enumerate(citations):
        with st.expander(
            f"Chunk #{i + 1} · doc {match.document_id[:8]} (Similarity: {match.similarity:.3f})",
            expanded=(i == 0),
        ):
            st.write(match.content)
            st.caption(f"Chunk index: {match.chunk_index}")


def render_query_history():
    """Render query history section"""
    if st.session_state.query_history:
        with st.expander("📋 Query History"):
            for i, past_query in enumerate(reversed(st.session_state.query_history[-5:])):
                st.write(f"{len(st.session_state.query_history) - i}. {past_query}")


def render_sentiment(rag_system: RAGSystem):
    st.header("🙂 Company Sentiment")
    if st.button("Analyze sentiment"):
        try:
            with st.spinner("Scoring companies..."):
                companies = rag_system.analyze_sentiment()
        except FilingAssistantError as e:
            st.error(f"❌ {e}")
            return
        if not companies:
            st.info("No companies found in the indexed documents.")
            return
        st.dataframe([c.to_dict() for c in companies], use_container_width=True)


def render_anomalies(rag_system: RAGSystem):
    st.header("⚠️ Financial Anomalies")
    if st.button("Detect anomalies"):
        try:
            with st.spinner("Scanning filings..."):
                anomalies = rag_system.detect_anomalies()
        except FilingAssistantError as e:
            st.error(f"❌ {e}")
            return
        if not anomalies:
            st.info("No anomalies detected.")
            return
        st.dataframe([a.to_dict() for a in anomalies], use_container_width=True)


def parse_ticker_input(raw: str) -> List[str]:
    return [t for t in raw.replace(" ", ",").split(",") if t.strip()]


def suggested_tickers() -> str:
    """Tickers found in the last uploads, falling back to the defaults"""
    found = []
    for status in st.session_state.statuses:
        for ticker in status.tickers:
            if ticker not in found:
                found.append(ticker)
    return ", ".join(found or DEFAULT_TICKERS)


def render_forecast(rag_system: RAGSystem):
    st.header("📈 30-day Forecast")
    raw = st.text_input("Tickers:", value=suggested_tickers(), key="forecast_tickers")
    if st.button("Run forecast"):
        try:
            with st.spinner("Fetching prices..."):
                forecasts = rag_system.forecast(parse_ticker_input(raw))
        except FilingAssistantError as e:
            st.error(f"❌ {e}")
            return

        st.dataframe(
            [{"symbol": f.symbol, **f.metrics.to_dict(), "error": f.error} for f in forecasts],
            use_container_width=True,
        )
        for f in forecasts:
            if f.failed:
                st.warning(f"{f.symbol}: {f.error}")
                continue
            st.subheader(f.symbol)
            chart = {p.date: {"close": p.close} for p in f.history[-120:]}
            for p in f.forecast:
                chart.setdefault(p.date, {})["forecast"] = p.predicted
            st.line_chart([{"date": d, **v} for d, v in chart.items()], x="date")


def render_strategy(rag_system: RAGSystem):
    st.header("🧭 Strategy")
    raw = st.text_input("Tickers:", value=suggested_tickers(), key="strategy_tickers")
    if st.button("Build strategy"):
        try:
            with st.spinner("Combining forecasts, sentiment and anomalies..."):
                recommendations = rag_system.build_strategy(parse_ticker_input(raw))
        except FilingAssistantError as e:
            st.error(f"❌ {e}")
            return

        for rec in recommendations:
            st.subheader(f"{rec.symbol}: {rec.decision} ({rec.confidence:.0f}% confidence)")
            for reason in rec.reasons:
                st.write(f"• {reason}")
            for source in rec.sources:
                st.caption(source)


def render_welcome_screen():
    """Render welcome screen with instructions"""
    st.markdown("---")
    st.header("🚀 Getting Started")
    st.markdown(
        """
    1. **Add API keys**: OpenAI for answers, Hugging Face for hosted embeddings
    2. **Upload PDFs**: 10-K / 10-Q filings or earnings documents
    3. **Process Documents**: wait for each file to reach *Indexed*
    4. **Explore**: ask questions, score sentiment, detect anomalies, forecast and build a strategy
    """
    )


def main():
    """Main application entry point"""
    st.set_page_config(page_title="Financial Filing Assistant", page_icon="📊", layout="wide")

    st.title("📊 Financial Filing Assistant")
    st.markdown("**Semantic search over SEC filings + GPT-4o-mini**")

    initialize_session_state()
    rag_system, top_k = render_sidebar()

    if rag_system is None:
        render_welcome_screen()
        return

    qa_tab, sentiment_tab, anomaly_tab, forecast_tab, strategy_tab = st.tabs(
        ["Q&A", "Sentiment", "Anomalies", "Forecast", "Strategy"]
    )
    with qa_tab:
        if rag_system.list_documents():
            render_query_interface(rag_system, top_k)
        else:
            render_welcome_screen()
    with sentiment_tab:
        render_sentiment(rag_system)
    with anomaly_tab:
        render_anomalies(rag_system)
    with forecast_tab:
        render_forecast(rag_system)
    with strategy_tab:
        render_strategy(rag_system)


if __name__ == "__main__":
    main()
