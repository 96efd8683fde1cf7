import logging
import os
import tempfile

from document import Document

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
BOM = "\ufeff"


class FileTypeHandler:
    """Reads and writes the delimited text behind a Document.

    Text is read and written untranslated (newline="") so the line
    terminators in the file are exactly the ones the codec sees. A leading
    byte-order mark is kept out of the text and written back on save.
    """

    def __init__(self, path: str):
        self.path = path
        _, ext = os.path.splitext(path)
        self.ext = ext.lower()
        self.bom = False

    def load_text(self) -> str:
        if not os.path.exists(self.path) or os.path.getsize(self.path) == 0:
            return ""
        with open(self.path, "r", encoding=ENCODING, newline="") as f:
            text = f.read()
        self.bom = text.startswith(BOM)
        return text[len(BOM):] if self.bom else text

    def load_or_create(self) -> Document:
        return Document(self.load_text(), path=self.path)

    def save(self, document: Document) -> None:
        self._write(document.text)
        logger.info("Saved %s", self.path)

    def _write(self, text: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".gridtext-", suffix=self.ext, dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8-sig" if self.bom else ENCODING, newline="") as f:
                f.write(text)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
