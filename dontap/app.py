"""Application entry point and setup for Don't Tap."""

import logging
import sys

from PySide6.QtWidgets import QApplication

from dontap.core.chapters import ChapterRepository
from dontap.core.levels import TemplateCatalog
from dontap.core.progress import ProgressStore
from dontap.ui.main_window import MainWindow


def configure_logging() -> None:
    """Configure application-wide logging with a standard format."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def run() -> None:
    """Load game content and start the main window."""
    configure_logging()
    app = QApplication(sys.argv)
    app.setApplicationName("Don't Tap")
    app.setApplicationDisplayName("Don't Tap")

    catalog = TemplateCatalog()
    chapters = ChapterRepository()
    progress_store = ProgressStore()
    logging.info("Loaded %s level templates and %s chapters", len(catalog.all()), len(chapters.all()))

    window = MainWindow(catalog=catalog, chapters=chapters, progress_store=progress_store)
    window.show()

    sys.exit(app.exec())
