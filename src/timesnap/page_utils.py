from __future__ import annotations

import logging

from .host import HostPage

logger = logging.getLogger(__name__)

_PAGE_UTILS_SOURCE = r"""
(() => {
  const ts = (window.__timesnap = window.__timesnap || {});
  if (ts.utils) {
    return;
  }
  const findCanvas = (selector) => {
    const element = document.querySelector(selector || "canvas");
    if (!element || typeof element.toDataURL !== "function") {
      return null;
    }
    return element;
  };
  ts.utils = {
    findCanvas,
    canvasToDataURL: (selector, type, quality) => {
      const canvas = findCanvas(selector);
      if (!canvas) {
        throw new Error(`No canvas matches ${selector}`);
      }
      return canvas.toDataURL(type, quality);
    },
  };
})();
"""

PAGE_UTILS_SCRIPT = _PAGE_UTILS_SOURCE.strip()


def install_page_utils(page: HostPage) -> None:
    page.inject_before_load(PAGE_UTILS_SCRIPT)
    logger.debug("Page utilities installed")
