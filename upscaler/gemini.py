"""
Gemini surface adapter: one method per pipeline stage.

Every element is addressed through an ordered candidate list (see
upscaler.probe): stable data-test-id attributes first, generic
structural fallbacks last.  Selectors may need updates when the
Gemini UI changes; discover them via browser DevTools.

Stages raise CapabilityTimeout / SubmissionRejected / EmptyResult (or let a
Playwright error through); the item pipeline decides what happens next.
"""

import logging
import os
import re

from playwright.sync_api import Page, TimeoutError as PlaywrightTimeout

from upscaler.config import PipelineConfig
from upscaler.errors import CapabilityTimeout, EmptyResult, SubmissionRejected
from upscaler.probe import await_any, check_any, first_usable, visible
from upscaler.utils import capture_diagnostics, get_logger

SEND_TIMEOUT = 5_000
MENU_TIMEOUT = 5_000
FILE_CHOOSER_TIMEOUT = 15_000
LOADING_APPEAR_TIMEOUT = 20_000
HEARTBEAT_INTERVAL = 10_000

# Only rendered once the signed-in app shell is up.
_MODE_MENU_BUTTON = '[data-test-id="bard-mode-menu-button"]'
_HIDDEN_IMAGE_UPLOAD = '[data-test-id="hidden-local-image-upload-button"]'

# The uploader web component keeps its file input inside a shadow root.
_JS_SHADOW_FILE_INPUT = """
() => {
    const uploader = document.querySelector('uploader');
    if (!uploader || !uploader.shadowRoot) return null;
    return uploader.shadowRoot.querySelector('input[type="file"]');
}
"""


class GeminiSurface:
    """Drive one Gemini chat page through the per-image stages."""

    def __init__(self, page: Page, config: PipelineConfig, logger: logging.Logger = None):
        self.page = page
        self.config = config
        self.log = logger or get_logger()

    # ── Candidate lists ──────────────────────────────────────────────────

    def _prompt_candidates(self) -> list:
        page = self.page
        return [
            visible(lambda: page.locator('[data-test-id="prompt-textarea"]')),
            visible(lambda: page.locator('[data-test-id*="prompt" i]')),
            visible(lambda: page.locator('[data-test-id*="input" i]')),
            visible(lambda: page.get_by_placeholder(re.compile(r"describe your image", re.I))),
            visible(lambda: page.get_by_role("textbox")),
            visible(lambda: page.locator("textarea")),
            visible(lambda: page.locator('[contenteditable="true"]')),
        ]

    def _new_chat_candidates(self) -> list:
        page = self.page
        return [
            visible(lambda: page.get_by_role("button", name=re.compile(r"new chat", re.I))),
            visible(lambda: page.locator('[aria-label*="new chat" i]')),
        ]

    def _sign_in_candidates(self) -> list:
        page = self.page
        return [
            visible(lambda: page.get_by_role("link", name=re.compile(r"sign in", re.I))),
            visible(lambda: page.get_by_role("button", name=re.compile(r"sign in", re.I))),
            visible(lambda: page.locator('a[href*="signin"]')),
        ]

    def _signed_in_candidates(self) -> list:
        page = self.page
        return [visible(lambda: page.locator(_MODE_MENU_BUTTON))]

    def _mode_button_candidates(self) -> list:
        page = self.page
        mode = re.escape(self.config.mode)
        return [
            visible(lambda: page.get_by_role("button", name=re.compile(mode, re.I))),
            visible(lambda: page.get_by_role("button", name=re.compile(r"mode", re.I))),
            visible(lambda: page.locator('[aria-label*="mode" i]')),
            visible(lambda: page.locator(_MODE_MENU_BUTTON)),
        ]

    def _mode_option_candidates(self, mode_name: str) -> list:
        page = self.page
        exact = re.compile(rf"^{re.escape(mode_name)}$", re.I)
        return [
            visible(lambda: page.get_by_role("option", name=exact)),
            visible(lambda: page.get_by_role("menuitem", name=exact)),
            visible(lambda: page.get_by_text(exact)),
        ]

    def _upload_button_candidates(self) -> list:
        page = self.page
        return [
            visible(lambda: page.locator('[data-test-id*="upload" i]')),
            visible(lambda: page.get_by_role("button", name=re.compile(r"upload", re.I))),
            visible(lambda: page.get_by_role("button", name=re.compile(r"add file", re.I))),
            visible(lambda: page.get_by_role("button", name=re.compile(r"\+"))),
            visible(lambda: page.get_by_role("button", name=re.compile(r"open upload file menu", re.I))),
        ]

    def _upload_menu_candidates(self) -> list:
        page = self.page
        return [
            visible(lambda: page.get_by_role("menuitem", name=re.compile(r"upload image", re.I))),
            visible(lambda: page.get_by_role("menuitem", name=re.compile(r"upload", re.I))),
        ]

    def _send_candidates(self) -> list:
        page = self.page
        return [
            visible(lambda: page.locator('[data-test-id*="send" i]')),
            visible(lambda: page.get_by_role("button", name=re.compile(r"send", re.I))),
            visible(lambda: page.locator('[aria-label*="send" i]')),
        ]

    def _download_candidates(self) -> list:
        page = self.page
        return [
            visible(lambda: page.get_by_role("button", name=re.compile(r"download full size", re.I))),
            visible(lambda: page.get_by_role("button", name=re.compile(r"download", re.I))),
            visible(lambda: page.locator('[aria-label*="download" i]')),
        ]

    # ── Stages ───────────────────────────────────────────────────────────

    def ensure_ready(self) -> None:
        """Make sure the prompt input is on screen, opening a new chat if needed."""
        self.log.debug("Ensuring prompt input is available...")
        candidates = self._prompt_candidates()
        if check_any(candidates):
            self.log.debug("Prompt input already visible.")
            return

        new_chat = first_usable(self._new_chat_candidates())
        if new_chat is not None:
            self.log.debug("  Opening a new chat")
            new_chat.click()

        await_any(candidates, self.config.ready_timeout_ms, name="prompt input")
        self.log.debug("Prompt input ready.")

    def ensure_authenticated(self) -> None:
        """
        Block until the signed-in app shell is visible.

        This is the one wait designed for a human: if the page shows a
        sign-in prompt, the user logs in by hand in the opened browser while
        we poll, for up to auth_timeout_ms.
        """
        self.log.info("Checking login state...")
        signed_in = self._signed_in_candidates()
        if check_any(signed_in):
            self.log.info("Login detected.")
            return

        if check_any(self._sign_in_candidates()):
            self.log.warning(
                "Sign-in prompt detected. Please log in to Gemini in the opened browser."
            )

        try:
            send_button = self.page.get_by_role("button", name=re.compile(r"send message", re.I))
            aria_disabled = send_button.first.get_attribute("aria-disabled", timeout=1_000)
            if aria_disabled and aria_disabled != "false":
                self.log.info("Send button disabled; waiting for login to complete.")
        except Exception as e:
            self.log.debug(f"  Send button state unavailable: {e}")

        await_any(
            signed_in,
            self.config.auth_timeout_ms,
            name="signed-in indicator",
            heartbeat=lambda elapsed: self.log.info(
                f"Still waiting for login... {elapsed:.0f}s elapsed"
            ),
            heartbeat_interval_ms=60_000,
        )
        self.log.info("Login detected.")

    def select_mode(self, mode_name: str = None) -> None:
        """
        Best-effort mode selection.

        No mode selector at all is fine (the UI may not offer one); opening
        the selector and then finding neither the option nor the mode
        already active is a failure.
        """
        mode_name = mode_name or self.config.mode
        self.log.debug(f"Selecting {mode_name} mode...")

        mode_button = first_usable(self._mode_button_candidates())
        if mode_button is None:
            self.log.info(f"Mode selector not found; skipping {mode_name} selection.")
            return

        mode_button.click()
        try:
            option = await_any(
                self._mode_option_candidates(mode_name),
                MENU_TIMEOUT,
                name=f"'{mode_name}' mode option",
            )
            option.click()
        except CapabilityTimeout:
            page = self.page
            already = [
                visible(lambda: page.get_by_role(
                    "button", name=re.compile(re.escape(mode_name), re.I)
                )),
            ]
            if not check_any(already):
                raise
            self.page.keyboard.press("Escape")
        self.log.debug(f"{mode_name} mode selected.")

    def submit_file(self, path: str) -> None:
        """
        Attach *path* to the pending message.

        Mechanisms, first acceptance wins:
          1. a plain input[type=file]
          2. the file input inside the uploader's shadow root
          3. the hidden local-image upload button → file chooser
          4. the visible upload button → "Upload image" menu item → file chooser
             (or a forced click on the button itself → file chooser)
        """
        if not os.path.isfile(path):
            raise SubmissionRejected(f"Local file not found: {path}")
        self.log.info(f"Uploading image: {os.path.basename(path)}")

        for label, mechanism in (
            ("file input", self._upload_via_file_input),
            ("shadow file input", self._upload_via_shadow_input),
            ("hidden upload button", self._upload_via_hidden_button),
            ("upload menu", self._upload_via_menu),
        ):
            try:
                if mechanism(path):
                    self.log.debug(f"  Uploaded via {label}")
                    return
            except Exception as e:
                self.log.debug(f"  Upload via {label} failed: {e}")

        raise SubmissionRejected(f"No upload mechanism accepted {os.path.basename(path)}")

    def _upload_via_file_input(self, path: str) -> bool:
        file_input = self.page.locator('input[type="file"]')
        if not file_input.count():
            return False
        file_input.first.set_input_files(path)
        return True

    def _upload_via_shadow_input(self, path: str) -> bool:
        handle = self.page.evaluate_handle(_JS_SHADOW_FILE_INPUT)
        try:
            element = handle.as_element()
            if element is None:
                return False
            element.set_input_files(path)
            return True
        finally:
            handle.dispose()

    def _upload_via_hidden_button(self, path: str) -> bool:
        button = self.page.locator(_HIDDEN_IMAGE_UPLOAD)
        if not button.count():
            return False
        with self.page.expect_file_chooser(timeout=FILE_CHOOSER_TIMEOUT) as fc_info:
            button.first.click(force=True)
        fc_info.value.set_files(path)
        return True

    def _upload_via_menu(self, path: str) -> bool:
        button = await_any(self._upload_button_candidates(), MENU_TIMEOUT, name="upload button")
        try:
            button.click()
            menu_item = await_any(
                self._upload_menu_candidates(), MENU_TIMEOUT, name="upload menu item"
            )
            with self.page.expect_file_chooser(timeout=FILE_CHOOSER_TIMEOUT) as fc_info:
                menu_item.click()
        except (CapabilityTimeout, PlaywrightTimeout) as e:
            self.log.debug(f"  Upload menu path failed ({e}); clicking upload button directly")
            with self.page.expect_file_chooser(timeout=FILE_CHOOSER_TIMEOUT) as fc_info:
                button.click(force=True)
        fc_info.value.set_files(path)
        return True

    def submit_prompt(self, text: str) -> None:
        self.log.debug("Entering prompt...")
        prompt_box = await_any(
            self._prompt_candidates(), self.config.ready_timeout_ms, name="prompt input"
        )
        try:
            prompt_box.fill(text)
        except Exception as e:
            raise SubmissionRejected(f"Prompt input rejected text: {e}") from e

    def send(self) -> None:
        """Click send; fall back to pressing Enter in the prompt."""
        self.log.debug("Sending prompt...")
        try:
            button = await_any(self._send_candidates(), SEND_TIMEOUT, name="send button")
        except CapabilityTimeout:
            self.log.debug("  Send button not found; pressing Enter")
            self.page.keyboard.press("Enter")
            return
        button.click()

    def await_completion(self) -> None:
        """
        Wait for the result to be ready.

        The "Loading Nano Banana" indicator is optional (Gemini sometimes
        skips it), so its absence is not an error.  The real signal is the
        download button.
        """
        self.log.info("Waiting for processing to complete...")
        loading = self.page.get_by_text(re.compile(r"loading nano banana", re.I))
        try:
            loading.wait_for(state="visible", timeout=LOADING_APPEAR_TIMEOUT)
            loading.wait_for(state="hidden", timeout=self.config.processing_timeout_ms)
        except PlaywrightTimeout:
            self.log.debug("  Loading indicator not seen; checking for download button")

        self._wait_for_download_button()
        self.log.info("Processing complete; download button visible.")

    def retrieve_result(self, destination: str) -> None:
        """Download the result to *destination*. Zero bytes is a failure."""
        self.log.info(f"Downloading to: {destination}")
        button = self._wait_for_download_button()
        with self.page.expect_download(timeout=self.config.download_timeout_ms) as dl_info:
            button.click()
        dl_info.value.save_as(destination)

        if not os.path.getsize(destination):
            # Drop the empty file so the retry can reuse the same name
            os.remove(destination)
            raise EmptyResult(f"Downloaded file is empty: {destination}")

    def capture_debug(self, label: str) -> list:
        """Screenshot + HTML + URL into the output directory. Never raises."""
        return capture_diagnostics(self.page, label, self.config.output_dir, logger=self.log)

    # ── Helpers ──────────────────────────────────────────────────────────

    def _wait_for_download_button(self):
        return await_any(
            self._download_candidates(),
            self.config.processing_timeout_ms,
            name="download button",
            heartbeat=lambda elapsed: self.log.info(
                f"Still waiting for download button... {elapsed:.0f}s elapsed"
            ),
            heartbeat_interval_ms=HEARTBEAT_INTERVAL,
        )
