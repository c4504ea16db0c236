"""
Page-side collaborators for the healing core.

- base: element resolution errors and driver error translation
- ax: accessibility tree fetch, dump rendering, role queries
- page: CdpPage (page control + ref handle actions)
- actions: click/fill by ref through the retry loop
"""

from .actions import click_ref, fill_ref, run_ref_action
from .base import ActionError, ElementResolutionError, to_agent_error
from .page import CdpPage, CssHandle

__all__ = [
    "ActionError",
    "CdpPage",
    "CssHandle",
    "ElementResolutionError",
    "click_ref",
    "fill_ref",
    "run_ref_action",
    "to_agent_error",
]
