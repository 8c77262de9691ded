"""
Break decision policy.
"""
from __future__ import annotations
import math

from reading_core.models import BreakTrigger, ContentContext

CHARS_PER_PAGE = 3000
MIN_ESTIMATED_PAGES = 5


def estimate_page_count(length: int) -> int:
    """Pages for a text of `length` characters; never fewer than five."""
    return max(MIN_ESTIMATED_PAGES, math.ceil(max(0, int(length)) / CHARS_PER_PAGE))


class BreakDecisionPolicy:
    """
    Manual requests are always honored. Automatic struggle triggers need the
    content to be longer than min_pages.
    """
    def __init__(self, min_pages: int = 5):
        self.min_pages = int(min_pages)

    def should_offer(self, trigger: BreakTrigger, context: ContentContext) -> bool:
        if trigger == BreakTrigger.MANUAL_REQUEST or context.manual_request:
            return True
        return estimate_page_count(context.content_length) > self.min_pages
