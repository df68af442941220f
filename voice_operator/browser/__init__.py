"""Browser module - document model, page maps, form scanning and actions."""

from .actions import ActionExecutor
from .dom import Document
from .form_scanner import FormScanner
from .manager import BrowserManager
from .page_map import PageMapExtractor
from .registry import ElementRegistry
from .switch_scanning import SwitchScanner

__all__ = [
    "ActionExecutor",
    "BrowserManager",
    "Document",
    "ElementRegistry",
    "FormScanner",
    "PageMapExtractor",
    "SwitchScanner",
]
