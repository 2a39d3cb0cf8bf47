"""Dependency Injector based DI Container."""

from dependency_injector import containers, providers

from om_intel.core.config import get_config

DAY_MS = 24 * 60 * 60 * 1000

# --- Factory Functions (defined before class to avoid NameError) ---


def _create_llm(config):
    """Create LLM provider."""
    from om_intel.llm.factory import LLMFactory

    return LLMFactory.create(config)


def _create_context_store(config):
    """Create the ephemeral context store."""
    from om_intel.store.factory import ContextStoreFactory

    return ContextStoreFactory.create(config)


def _create_ocr_engine(config):
    from om_intel.documents.ocr import TesseractOCREngine

    return TesseractOCREngine(timeout_seconds=config.ocr_timeout_seconds)


def _create_object_storage(config):
    from om_intel.storage.object_storage import HttpObjectStorage

    return HttpObjectStorage(timeout=config.timeout_seconds)


def _create_extraction_options(config):
    from om_intel.documents.page_extractor import ExtractionOptions

    return ExtractionOptions(
        dpi=config.dpi,
        ocr_char_threshold=config.ocr_char_threshold,
        digit_ratio_threshold=config.digit_ratio_threshold,
        language=config.ocr_language,
    )


def _create_page_extractor(ocr_engine, options):
    from om_intel.documents.page_extractor import PageTextExtractor

    return PageTextExtractor(ocr_engine=ocr_engine, default_options=options)


def _create_parser(extractor, config):
    from om_intel.documents.parser import PdfDocumentParser

    return PdfDocumentParser(extractor, page_timeout_seconds=config.page_timeout_seconds)


def _create_chunker(config):
    """Create document chunker with the model's tokenizer."""
    from om_intel.documents.chunker import DocumentChunker
    from om_intel.utils.token_counter import TokenCounter

    return DocumentChunker(token_counter=TokenCounter(config.model))


def _create_context_writer(store):
    from om_intel.store.writer import ContextWriter

    return ContextWriter(store)


def _create_background_runner():
    from om_intel.core.background import BackgroundTaskRunner

    return BackgroundTaskRunner()


def _create_deal_points_service(config, store, llm):
    """Create the deal-points chain: regex first, then the LLM."""
    from om_intel.ingestion.deal_points import (
        DealPointsService,
        LLMDealPointsStrategy,
        RegexDealPointsStrategy,
    )

    ttl_ms = None if config.is_production else config.gate.deal_points_ttl_days * DAY_MS
    return DealPointsService(
        store=store,
        strategies=[RegexDealPointsStrategy(), LLMDealPointsStrategy(llm)],
        cache_ttl_ms=ttl_ms,
    )


def _create_fetch_policy(config):
    from om_intel.core.retry import RetryPolicy

    return RetryPolicy(
        max_attempts=config.retry_max_attempts,
        base_delay=config.retry_base_delay_seconds,
        max_delay=config.retry_max_delay_seconds,
        jitter=config.retry_jitter,
        deadline_seconds=config.retry_deadline_seconds,
    )


def _create_orchestrator(
    config,
    store,
    writer,
    object_storage,
    parser,
    chunker,
    deal_points,
    runner,
    extraction_options,
    fetch_policy,
):
    """Create the ingestion orchestrator."""
    from om_intel.ingestion.orchestrator import IngestionOrchestrator, IngestSettings

    settings = IngestSettings(
        fast_max_pages=config.ingest.fast_max_pages,
        fast_chunk_size=config.ingest.fast_chunk_size,
        fast_range_bytes=config.object_storage.fast_range_bytes,
        background_chunk_size=config.ingest.background_chunk_size,
        background_ocr=config.ingest.background_ocr,
        pages_per_part=config.gate.pages_per_part,
        request_budget_seconds=config.ingest.request_budget_seconds,
        background_timeout_seconds=config.ingest.background_timeout_seconds,
        document_id_prefix=config.ingest.document_id_prefix,
        min_file_size=config.extraction.min_file_size,
        max_file_size=config.extraction.max_file_size,
    )
    return IngestionOrchestrator(
        store=store,
        writer=writer,
        object_storage=object_storage,
        parser=parser,
        chunker=chunker,
        deal_points=deal_points,
        runner=runner,
        extraction_options=extraction_options,
        fetch_policy=fetch_policy,
        settings=settings,
    )


def _create_intent_classifier(config):
    from om_intel.chat.intent import IntentClassifier

    return IntentClassifier(config)


def _create_gate(store, config):
    from om_intel.chat.gate import ChatContextGate

    return ChatContextGate(store, pages_per_part=config.pages_per_part)


def _create_retriever(store):
    from om_intel.chat.retriever import ContextRetriever

    return ContextRetriever(store)


def _create_history_limiter(config):
    """Trim conversation history to the model context window."""
    from functools import partial

    from om_intel.utils.token_counter import get_model_token_limit, truncate_messages

    return partial(
        truncate_messages,
        max_tokens=get_model_token_limit(config.model),
        model=config.model,
        reserve_tokens=config.max_tokens,
    )


def _create_chat_service(config, store, classifier, gate, retriever, deal_points, llm, history_limiter):
    """Create the chat service."""
    from om_intel.chat.service import ChatService

    return ChatService(
        store=store,
        classifier=classifier,
        gate=gate,
        retriever=retriever,
        deal_points=deal_points,
        llm=llm,
        config=config.gate,
        model=config.llm.model,
        ephemeral_prefix=config.ingest.document_id_prefix,
        history_limiter=history_limiter,
    )


class DIContainer(containers.DeclarativeContainer):
    """Main dependency injection container."""

    # Configuration provider
    config = providers.Singleton(get_config)

    # LLM Provider
    llm = providers.Singleton(
        _create_llm,
        config=config.provided.llm,
    )

    # Ephemeral Context Store
    context_store = providers.Singleton(
        _create_context_store,
        config=config.provided.store,
    )

    # Document processing
    ocr_engine = providers.Singleton(
        _create_ocr_engine,
        config=config.provided.extraction,
    )

    object_storage = providers.Singleton(
        _create_object_storage,
        config=config.provided.object_storage,
    )

    extraction_options = providers.Singleton(
        _create_extraction_options,
        config=config.provided.extraction,
    )

    page_extractor = providers.Singleton(
        _create_page_extractor,
        ocr_engine=ocr_engine,
        options=extraction_options,
    )

    parser = providers.Singleton(
        _create_parser,
        extractor=page_extractor,
        config=config.provided.extraction,
    )

    chunker = providers.Singleton(
        _create_chunker,
        config=config.provided.llm,
    )

    context_writer = providers.Singleton(
        _create_context_writer,
        store=context_store,
    )

    background_runner = providers.Singleton(_create_background_runner)

    deal_points_service = providers.Singleton(
        _create_deal_points_service,
        config=config,
        store=context_store,
        llm=llm,
    )

    fetch_policy = providers.Singleton(
        _create_fetch_policy,
        config=config.provided.object_storage,
    )

    # Ingestion
    orchestrator = providers.Singleton(
        _create_orchestrator,
        config=config,
        store=context_store,
        writer=context_writer,
        object_storage=object_storage,
        parser=parser,
        chunker=chunker,
        deal_points=deal_points_service,
        runner=background_runner,
        extraction_options=extraction_options,
        fetch_policy=fetch_policy,
    )

    # Chat
    intent_classifier = providers.Singleton(
        _create_intent_classifier,
        config=config.provided.gate,
    )

    gate = providers.Singleton(
        _create_gate,
        store=context_store,
        config=config.provided.gate,
    )

    retriever = providers.Singleton(
        _create_retriever,
        store=context_store,
    )

    history_limiter = providers.Singleton(
        _create_history_limiter,
        config=config.provided.llm,
    )

    chat_service = providers.Singleton(
        _create_chat_service,
        config=config,
        store=context_store,
        classifier=intent_classifier,
        gate=gate,
        retriever=retriever,
        deal_points=deal_points_service,
        llm=llm,
        history_limiter=history_limiter,
    )


# Global container instance
container = DIContainer()
