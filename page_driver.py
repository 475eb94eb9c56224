"""Page automation driver: the protocol the solver talks to and a Playwright implementation."""

import logging
from contextlib import contextmanager
from typing import Optional, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from config import HEADLESS_MODE, TIMEOUT
from errors import DriverError

logger = logging.getLogger(__name__)

REF_ATTRIBUTE = "data-exam-ref"


class PageDriver(Protocol):
    def open(self, url: str) -> None: ...

    def snapshot(self) -> str: ...

    def click(self, ref: str) -> None: ...

    def fill(self, ref: str, value: str) -> None: ...

    def read_page_text(self) -> str: ...

    def screenshot(self) -> bytes: ...


# Walks the DOM, tags every reported element with a fresh ref and returns
# the indented snapshot text understood by snapshot_parser.
SNAPSHOT_SCRIPT = """
(refAttr) => {
  document.querySelectorAll('[' + refAttr + ']').forEach(el => el.removeAttribute(refAttr));
  let counter = 0;
  const lines = [];
  const used = new Set();
  const SKIP = ['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE', 'SVG'];
  const clean = (t) => (t || '').replace(/\\s+/g, ' ').trim().replace(/"/g, '\\\\"');
  const hidden = (el) => {
    const style = window.getComputedStyle(el);
    return style.display === 'none' || style.visibility === 'hidden';
  };
  const tag = (el) => {
    counter += 1;
    const ref = 'e' + counter;
    el.setAttribute(refAttr, ref);
    return ref;
  };
  const isChoice = (el) => el.tagName === 'INPUT' && ['radio', 'checkbox'].includes((el.type || '').toLowerCase());
  const labelOf = (el) => {
    if (el.labels && el.labels.length) return el.labels[0].innerText;
    const aria = el.getAttribute('aria-label');
    if (aria) return aria;
    const wrap = el.closest('label');
    if (wrap) return wrap.innerText;
    const next = el.nextElementSibling;
    if (next && isChoice(el)) { used.add(next); return next.innerText; }
    return el.getAttribute('placeholder') || el.getAttribute('title') || el.getAttribute('name') || '';
  };
  const roleOf = (el) => {
    const explicit = (el.getAttribute('role') || '').toLowerCase();
    if (['heading', 'button', 'radio', 'checkbox', 'radiogroup', 'textbox', 'combobox', 'link'].includes(explicit)) return explicit;
    const t = el.tagName.toLowerCase();
    if (/^h[1-6]$/.test(t)) return 'heading';
    if (t === 'input') {
      const type = (el.type || 'text').toLowerCase();
      if (type === 'radio' || type === 'checkbox') return type;
      if (['submit', 'button', 'reset'].includes(type)) return 'button';
      if (['hidden', 'file', 'image'].includes(type)) return null;
      return 'textbox';
    }
    if (t === 'textarea') return 'textbox';
    if (t === 'select') return 'combobox';
    if (t === 'button') return 'button';
    if (t === 'a' && el.hasAttribute('href')) return 'link';
    return null;
  };
  const ownText = (el) => Array.from(el.childNodes)
    .filter(n => n.nodeType === Node.TEXT_NODE)
    .map(n => n.textContent).join(' ');
  const visit = (el, depth) => {
    if (SKIP.includes(el.tagName.toUpperCase())) return;
    if (hidden(el) && !isChoice(el)) return;
    const pad = '  '.repeat(depth);
    if (el.tagName === 'LABEL' && el.control) {
      el.querySelectorAll('input, select, textarea').forEach(c => visit(c, depth));
      return;
    }
    const role = roleOf(el);
    if (role) {
      let name;
      if (['heading', 'button', 'link'].includes(role)) name = el.innerText || el.value || el.getAttribute('aria-label');
      else if (role === 'radiogroup') name = el.getAttribute('aria-label') || '';
      else name = labelOf(el);
      let line = pad + '- ' + role + ' "' + clean(name) + '"';
      if (el.checked) line += ' [checked]';
      if (el.required) line += ' [required]';
      lines.push(line + ' [ref=' + tag(el) + ']');
      if (role !== 'radiogroup') return;
      depth += 1;
    } else if (!used.has(el)) {
      const text = clean(ownText(el));
      if (text) lines.push(pad + '- text "' + text + '" [ref=' + tag(el) + ']');
    }
    for (const child of el.children) visit(child, depth);
  };
  visit(document.body, 0);
  return lines.join('\\n');
}
"""


@contextmanager
def _driver_errors(action: str):
    try:
        yield
    except PlaywrightError as e:
        raise DriverError(f"{action} failed: {e}") from e


class PlaywrightPageDriver:
    """Drives one Chromium page. Refs are only valid until the next snapshot or navigation."""

    def __init__(self, headless: bool = HEADLESS_MODE, timeout: int = TIMEOUT):
        self.headless = headless
        self.timeout = timeout
        self._playwright = None
        self._browser = None
        self.page = None

    def start(self) -> "PlaywrightPageDriver":
        with _driver_errors("browser launch"):
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.headless)
            context = self._browser.new_context()
            self.page = context.new_page()
        logger.info(f"Browser started (headless={self.headless})")
        return self

    def close(self):
        try:
            if self._browser is not None:
                self._browser.close()
            logger.info("Browser closed")
        except PlaywrightError as e:
            logger.warning(f"Error closing browser: {e}")
        finally:
            if self._playwright is not None:
                self._playwright.stop()
            self._browser = None
            self._playwright = None
            self.page = None

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _require_page(self):
        if self.page is None:
            raise DriverError("Browser is not started")
        return self.page

    def _locate(self, ref: str):
        return self._require_page().locator(f'[{REF_ATTRIBUTE}="{ref}"]')

    def open(self, url: str) -> None:
        page = self._require_page()
        with _driver_errors(f"open {url}"):
            page.goto(url, wait_until="load", timeout=self.timeout)

    def snapshot(self) -> str:
        page = self._require_page()
        with _driver_errors("snapshot"):
            return page.evaluate(SNAPSHOT_SCRIPT, REF_ATTRIBUTE)

    def click(self, ref: str) -> None:
        locator = self._locate(ref)
        click_strategies = [
            # Normal click on the element
            lambda: locator.click(timeout=self.timeout),
            # Styled radios and checkboxes often hide the real input
            lambda: locator.dispatch_event("click", timeout=self.timeout),
        ]

        last_error: Optional[Exception] = None
        for i, strategy in enumerate(click_strategies):
            try:
                strategy()
                return
            except PlaywrightError as e:
                logger.debug(f"  Click strategy {i + 1} failed for {ref}: {e}")
                last_error = e
        raise DriverError(f"click {ref} failed: {last_error}")

    def fill(self, ref: str, value: str) -> None:
        locator = self._locate(ref)
        with _driver_errors(f"fill {ref}"):
            if locator.evaluate("el => el.tagName") == "SELECT":
                locator.select_option(label=value, timeout=self.timeout)
            else:
                locator.fill(value, timeout=self.timeout)

    def read_page_text(self) -> str:
        page = self._require_page()
        with _driver_errors("read page text"):
            return page.inner_text("body", timeout=self.timeout)

    def screenshot(self) -> bytes:
        page = self._require_page()
        with _driver_errors("screenshot"):
            return page.screenshot(full_page=True, timeout=self.timeout)
