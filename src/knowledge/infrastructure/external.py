"""
Knowledge External Service Integrations
=======================================

External services for question answering:
- YAML lexicon file watcher (hot reload)
- APScheduler job re-embedding placeholder chunk vectors
- Text extraction from uploaded files (PyMuPDF for PDF)
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

import pymupdf
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from src.core import DocumentExtractionException
from src.knowledge.application import ILexiconProvider
from src.knowledge.domain import LexiconConfig
from src.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


LEXICON_LOAD_ERRORS = (OSError, yaml.YAMLError, ValidationError, TypeError)


class LexiconFileHandler(FileSystemEventHandler):
    """Watchdog event handler for lexicon file changes."""

    def __init__(self, manager: "LexiconConfigManager", config_path: Path):
        self.manager = manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Lexicon file changed: {event.src_path}")
            self.manager.reload()


class LexiconConfigManager(ILexiconProvider):
    """
    Thread-safe lexicon holder with hot-reload support.

    A missing or broken file at startup means the built-in lexicon. A broken
    file on reload keeps the previous lexicon in place.
    """

    def __init__(self):
        self._config: Optional[LexiconConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> LexiconConfig:
        """
        Initial lexicon load.

        A file that cannot be read or validated is logged and replaced by the
        built-in lexicon; the watcher still picks up a later fix.
        """
        self._path = path
        try:
            config = self._load_from_file(path)
        except LEXICON_LOAD_ERRORS as e:
            logger.error(f"Failed to load lexicon, using built-in lexicon: {e}")
            config = LexiconConfig()

        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> LexiconConfig:
        if not path.exists():
            logger.info(f"Lexicon file not found: {path}, using built-in lexicon")
            return LexiconConfig()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return LexiconConfig(**data)

    def reload(self) -> bool:
        """Reload the lexicon from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except LEXICON_LOAD_ERRORS as e:
            logger.error(f"Failed to reload lexicon: {e}")
            return False

        with self._lock:
            self._config = new_config
        logger.info("Lexicon reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching the lexicon file for changes.

        Skipped when the file does not exist or the platform has no file
        notification support.
        """
        if self._path is None:
            raise RuntimeError("Lexicon not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(f"Lexicon file doesn't exist, skipping file watch: {self._path}")
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                LexiconFileHandler(self, self._path),
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching lexicon file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static lexicon: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> LexiconConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("Lexicon not loaded")
            return self._config


class EmbeddingRefreshScheduler:
    """
    Wrapper for APScheduler running the placeholder-embedding refresh.

    Manages the lifecycle of the scheduler and its single job.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        if self._running:
            logger.warning("Embedding refresh scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="embedding_refresh",
            name="Embedding Refresh Job",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("Embedding refresh scheduler started",
                    extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Embedding refresh scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running


# ========== Text extraction ==========

TEXT_CONTENT_TYPES = {"text/plain", "text/markdown", "text/x-markdown"}
TEXT_SUFFIXES = {".txt", ".md", ".markdown"}


def extract_pdf_text(file_bytes: bytes, filename: str = "upload.pdf") -> str:
    """
    Text of every page of a PDF, pages separated by blank lines.

    Raises:
        DocumentExtractionException: If the bytes are not a readable PDF
    """
    pages = []
    try:
        with log_latency(logger, "pdf_extract", size=len(file_bytes)):
            with pymupdf.open(stream=file_bytes, filetype="pdf") as doc:
                for i in range(doc.page_count):
                    pages.append((doc.load_page(i).get_text("text") or "").strip())
    except (RuntimeError, ValueError) as e:
        raise DocumentExtractionException(filename, f"Could not read PDF: {e}")

    return "\n\n".join(page for page in pages if page)


def extract_text(filename: str, content_type: Optional[str], file_bytes: bytes) -> str:
    """
    Plain text of an uploaded file.

    Supports PDF and UTF-8 text/markdown.

    Raises:
        DocumentExtractionException: If the file type is unsupported or the content
            cannot be decoded, or no text is left after extraction
    """
    suffix = Path(filename or "").suffix.lower()
    content_type = (content_type or "").split(";")[0].strip().lower()

    if content_type == "application/pdf" or suffix == ".pdf":
        text = extract_pdf_text(file_bytes, filename)
    elif content_type in TEXT_CONTENT_TYPES or suffix in TEXT_SUFFIXES:
        try:
            text = file_bytes.decode("utf-8")
        except UnicodeDecodeError:
            raise DocumentExtractionException(filename, "Text files must be UTF-8 encoded")
    else:
        raise DocumentExtractionException(
            filename,
            f"Unsupported file type: {content_type or suffix or 'unknown'}",
            details={"supported": ["application/pdf", *sorted(TEXT_CONTENT_TYPES)]}
        )

    if not text.strip():
        raise DocumentExtractionException(filename, "Uploaded file contains no text")
    return text
