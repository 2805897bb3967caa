from refsnap.dom.base import HostDocument
from refsnap.dom.capture import CapturedDocument, capture_page
from refsnap.dom.html import HtmlDocument

__all__ = ["HostDocument", "HtmlDocument", "CapturedDocument", "capture_page"]
