#!/usr/bin/env python3
"""
Corpus HTTP server backed by OpenAI extraction and embeddings.

Environment:
    OPENAI_API_KEY           API key for extraction and embeddings
    CORPUS_OPENAI_BASE_URL   Optional OpenAI-compatible base URL
    CORPUS_EXTRACTION_MODEL  Vision model for page extraction (default: gpt-4o)
    CORPUS_EMBEDDING_MODEL   Embedding model (default: text-embedding-3-small)
    CORPUS_DATA_DIR          Directory for checkpoints and blobs (default: ./corpus-data)
    CORPUS_CORS_ORIGINS      Comma-separated origins allowed to call the API

Usage:
    python tools/CorpusServer.py
"""

import logging
import os
from pathlib import Path

from com_blockether_corpus.asgi import ASGIConfig, ASGICoreApplication, CORSConfig, CorpusASGIModule, CorpusServices
from com_blockether_corpus.embedding import EmbeddingSettings
from com_blockether_corpus.extraction import FileCheckpointStore
from com_blockether_corpus.utils.BlobStore import LocalBlobStore
from com_blockether_corpus.utils.instructor.InstructorPageExtractionCall import InstructorPageExtractionCall
from com_blockether_corpus.utils.openai.OpenAIEmbeddingCall import OpenAIEmbeddingCall

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_application() -> ASGICoreApplication:
    data_dir = Path(os.environ.get("CORPUS_DATA_DIR", "corpus-data"))
    page_extractor = InstructorPageExtractionCall()

    services = CorpusServices.build(
        page_extractor,
        OpenAIEmbeddingCall(),
        embedding_settings=EmbeddingSettings(
            model=os.environ.get("CORPUS_EMBEDDING_MODEL", "text-embedding-3-small"),
        ),
        checkpoint_store=FileCheckpointStore(data_dir / "checkpoints"),
        blob_store=LocalBlobStore(data_dir / "blobs"),
        model_names=[page_extractor.model],
    )

    origins = [origin.strip() for origin in os.environ.get("CORPUS_CORS_ORIGINS", "").split(",") if origin.strip()]
    application = ASGICoreApplication(
        ASGIConfig(
            port=int(os.environ.get("PORT", "8000")),
            cors=CORSConfig(allow_origins=origins) if origins else None,
        )
    )
    application.mount_module(CorpusASGIModule(services))
    return application


def main() -> None:
    application = create_application()
    logger.info(f"Serving corpus API on http://{application.config.host}:{application.config.port}/corpus")
    application.run()


if __name__ == "__main__":
    main()
