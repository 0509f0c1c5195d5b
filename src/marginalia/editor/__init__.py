"""Editor package containing the document model and editing state."""

from .document_model import Document, DocumentModel, Paragraph, Remark, Sentence, default_document
from .drag_reorder import DragReorderCoordinator, HoverTarget
from .insertion_points import InsertionPoint, InsertionPointRegistry
from .sentence_editor import SentenceEditor

__all__ = [
    "Document",
    "DocumentModel",
    "DragReorderCoordinator",
    "HoverTarget",
    "InsertionPoint",
    "InsertionPointRegistry",
    "Paragraph",
    "Remark",
    "Sentence",
    "SentenceEditor",
    "default_document",
]
