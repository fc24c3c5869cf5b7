"""
DialogManager - enumerate and resolve in-page modals and native dialogs.

Custom modals are found by a bounded DOM script that checks the usual
modal container patterns, keeps the visible ones and stamps each with
a ``data-extimpact-dialog`` attribute so it can be addressed again by
a stable selector.  Button labels come back raw and are classified in
Python.  Native ``alert``/``confirm``/``prompt`` dialogs are owned by
the browser session, which holds the pending one until it is resolved.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from extimpact import config
from extimpact.models import page_state
from extimpact.utils import deadline as deadline_mod
from extimpact.utils import errors, logger

if TYPE_CHECKING:
    from extimpact.browser import session as session_mod

log = logger.create_logger("DialogManager")

# ============================================================================
# Patterns
# ============================================================================

MODAL_SELECTORS = [
    "dialog[open]",
    '[role="dialog"]',
    '[role="alertdialog"]',
    '[aria-modal="true"]',
    ".modal.show",
    ".modal.in",
    ".modal.is-active",
    ".ant-modal",
    ".el-dialog",
    ".MuiDialog-root",
    ".swal2-popup",
    ".popup.active",
    ".overlay.active",
]

CLOSE_SELECTORS = [
    ".close",
    '[aria-label="close"]',
    '[aria-label="Close"]',
    "[data-dismiss]",
    "[data-bs-dismiss]",
    ".modal-close",
]

DIALOG_ATTRIBUTE = "data-extimpact-dialog"

AFFIRMATIVE_RE: re.Pattern[str] = re.compile(
    r"accept|agree|allow|got it|i understand|okay"
    r"|ok\b|continue|confirm|yes\b|proceed|submit|understood|sure\b",
    re.IGNORECASE,
)

NEGATIVE_RE: re.Pattern[str] = re.compile(
    r"cancel|dismiss|reject|decline|deny|refuse|no thanks|not now|later"
    r"|don'?t|\bno\b|close|skip",
    re.IGNORECASE,
)

_CLOSE_LABELS = frozenset({"×", "✕", "✖", "x", "close"})

# Shared by the detection and click scripts so button indices agree.
_BUTTONS_JS = """
const __buttons = (root, closeSelectors) => {
  const nodes = root.querySelectorAll(
    'button, [role="button"], input[type="button"], input[type="submit"], a.btn'
  );
  const out = [];
  for (const node of nodes) {
    const label = (node.innerText || node.value || node.getAttribute('aria-label')
      || node.getAttribute('title') || '').trim();
    const isClose = closeSelectors.some((sel) => { try { return node.matches(sel); } catch (e) { return false; } });
    out.push({ node, label, isClose });
  }
  return out;
};
"""

DETECT_SCRIPT = """(args) => {
""" + _BUTTONS_JS + """
  const visible = (el) => {
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') return false;
    const rect = el.getBoundingClientRect();
    return rect.width > 0 && rect.height > 0;
  };
  const seen = new Set();
  const found = [];
  window.__extimpactDialogSeq = window.__extimpactDialogSeq || 0;
  for (const pattern of args.selectors) {
    let nodes;
    try { nodes = document.querySelectorAll(pattern); } catch (e) { continue; }
    for (const el of nodes) {
      if (seen.has(el) || !visible(el)) continue;
      seen.add(el);
      if (!el.hasAttribute(args.attr)) {
        window.__extimpactDialogSeq += 1;
        el.setAttribute(args.attr, String(window.__extimpactDialogSeq));
      }
      found.push({ el, pattern });
    }
  }
  const selectorOf = (el) => '[' + args.attr + '="' + el.getAttribute(args.attr) + '"]';
  const dialogs = found.map(({ el, pattern }) => {
    const rect = el.getBoundingClientRect();
    let parent = el.parentElement;
    while (parent && !seen.has(parent)) parent = parent.parentElement;
    return {
      selector: selectorOf(el),
      tagName: el.tagName.toLowerCase(),
      bounds: { width: rect.width, height: rect.height },
      message: (el.innerText || '').trim().slice(0, 200),
      matchedPattern: pattern,
      nestedIn: parent ? selectorOf(parent) : null,
      buttons: __buttons(el, args.closeSelectors).map(({ label, isClose }) => ({ label, isClose })),
    };
  });
  return { viewport: { width: window.innerWidth, height: window.innerHeight }, dialogs };
}"""

LIST_BUTTONS_SCRIPT = """(args) => {
""" + _BUTTONS_JS + """
  const el = document.querySelector(args.selector);
  if (!el) return null;
  return __buttons(el, args.closeSelectors).map(({ label, isClose }) => ({ label, isClose }));
}"""

CLICK_BUTTON_SCRIPT = """(args) => {
""" + _BUTTONS_JS + """
  const el = document.querySelector(args.selector);
  if (!el) return 'missing-container';
  const button = __buttons(el, args.closeSelectors)[args.index];
  if (!button) return 'missing-button';
  button.node.click();
  return 'clicked';
}"""


# ============================================================================
# Classification
# ============================================================================


def classify_button(label: str, is_close: bool = False) -> page_state.DialogButton:
    """Classify a button from its visible label."""
    text = label.strip()
    close = is_close or text.lower() in _CLOSE_LABELS
    negative = bool(NEGATIVE_RE.search(text))
    affirmative = not negative and bool(AFFIRMATIVE_RE.search(text))
    return page_state.DialogButton(label=text, is_affirmative=affirmative, is_negative=negative, is_close=close)


def choose_button(buttons: list[page_state.DialogButton], action: page_state.DialogAction) -> int | None:
    """Pick the index of the button that performs *action*.

    ``accept`` needs an affirmative button.  ``dismiss`` prefers a
    negative button, then a close control, then a lone button.
    """
    if action == "accept":
        return next((i for i, b in enumerate(buttons) if b.is_affirmative), None)
    for predicate in (lambda b: b.is_negative and not b.is_close, lambda b: b.is_close):
        index = next((i for i, b in enumerate(buttons) if predicate(b)), None)
        if index is not None:
            return index
    return 0 if len(buttons) == 1 else None


def outermost(raw_dialogs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop matches nested inside another match so one modal yields one record."""
    return [d for d in raw_dialogs if not d.get("nestedIn")]


def _record(raw: dict[str, Any]) -> page_state.DialogRecord:
    bounds = raw.get("bounds")
    return page_state.DialogRecord(
        element=page_state.DialogElement(
            tag_name=raw.get("tagName", ""),
            bounds=page_state.ElementBounds(**bounds) if bounds else None,
        ),
        message=raw.get("message", ""),
        buttons=[classify_button(b.get("label", ""), b.get("isClose", False)) for b in raw.get("buttons") or []],
        selector=raw["selector"],
        matched_pattern=raw.get("matchedPattern", ""),
    )


# ============================================================================
# Manager
# ============================================================================


class DialogManager:
    """Finds and resolves dialogs on the session's tab."""

    def __init__(
        self,
        session: session_mod.BrowserSession,
        settings: config.ProbeSettings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or config.get_settings()

    async def detect(self) -> page_state.DialogDetection:
        """Enumerate visible custom modals and any pending native dialog.

        While a native dialog is open the page cannot run scripts, so
        the DOM scan is skipped and only the native dialog is reported.

        Raises:
            DetectionTimeout: The DOM scan did not finish in time.
        """
        native_message = self._session.pending_native_dialog()
        if native_message is not None:
            return page_state.DialogDetection(
                browser_dialog_visible=True,
                browser_dialog_message=native_message,
                summary=page_state.DialogSummary(browser_dialogs=1, visible_dialogs=1),
            )

        raw = await deadline_mod.bounded(
            self._session.evaluate(DETECT_SCRIPT, {
                "selectors": MODAL_SELECTORS,
                "closeSelectors": CLOSE_SELECTORS,
                "attr": DIALOG_ATTRIBUTE,
            }),
            self._settings.detection_timeout_ms,
            error_type=errors.DetectionTimeout,
            operation="dialog_detect",
        )
        raw = raw or {}
        records = [_record(d) for d in outermost(raw.get("dialogs") or [])]
        viewport = raw.get("viewport")

        return page_state.DialogDetection(
            custom_dialogs=records,
            summary=page_state.DialogSummary(custom_dialogs=len(records), visible_dialogs=len(records)),
            viewport=page_state.ElementBounds(**viewport) if viewport else None,
        )

    async def handle(
        self,
        action: page_state.DialogAction,
        selector: str | None = None,
        timeout_ms: int | None = None,
    ) -> bool:
        """Resolve one dialog.

        Without *selector*, accept or dismiss the pending native
        dialog, waiting up to *timeout_ms* for one to appear.  With
        *selector*, click the modal's button that matches *action*.

        Returns:
            ``True`` if a dialog was resolved; ``False`` if no native
            dialog appeared in time.

        Raises:
            ElementNotFound: The modal or a suitable button is gone.
            DetectionTimeout: The page did not answer in time.
        """
        if action not in ("accept", "dismiss"):
            raise ValueError(f"Unknown dialog action {action!r}")
        timeout_ms = timeout_ms or self._settings.dialog_handle_timeout_ms
        if selector is None:
            return await self._handle_native(action, timeout_ms)

        deadline = deadline_mod.Deadline.after(timeout_ms)
        args = {"selector": selector, "closeSelectors": CLOSE_SELECTORS}
        raw_buttons = await deadline_mod.bounded(
            self._session.evaluate(LIST_BUTTONS_SCRIPT, args),
            timeout_ms,
            error_type=errors.DetectionTimeout,
            operation="dialog_buttons",
            deadline=deadline,
        )
        if raw_buttons is None:
            raise errors.ElementNotFound(f"Dialog {selector} is no longer in the page", operation="dialog_handle")

        buttons = [classify_button(b.get("label", ""), b.get("isClose", False)) for b in raw_buttons]
        index = choose_button(buttons, action)
        if index is None:
            raise errors.ElementNotFound(
                f"Dialog {selector} has no button to {action}", operation="dialog_handle"
            )

        outcome = await deadline_mod.bounded(
            self._session.evaluate(CLICK_BUTTON_SCRIPT, {**args, "index": index}),
            timeout_ms,
            error_type=errors.DetectionTimeout,
            operation="dialog_click",
            deadline=deadline,
        )
        if outcome != "clicked":
            raise errors.ElementNotFound(
                f"Dialog {selector} changed before it could be clicked ({outcome})", operation="dialog_handle"
            )
        log.info("Custom dialog resolved", {"selector": selector, "action": action, "button": buttons[index].label})
        return True

    async def _handle_native(self, action: page_state.DialogAction, timeout_ms: int) -> bool:
        if not await self._session.wait_for_native_dialog(timeout_ms):
            log.debug("No native dialog appeared", {"timeout": timeout_ms})
            return False
        if action == "accept":
            handled = await self._session.accept_native_dialog()
        else:
            handled = await self._session.dismiss_native_dialog()
        if handled:
            log.info("Native dialog resolved", {"action": action})
        return handled
