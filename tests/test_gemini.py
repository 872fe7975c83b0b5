"""GeminiSurface against a scripted fake page."""

import os
import re
from contextlib import contextmanager

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeout

import upscaler.gemini as gemini
from upscaler.errors import CapabilityTimeout, EmptyResult, SubmissionRejected
from upscaler.gemini import GeminiSurface


def _key(kind, *parts):
    return (kind,) + tuple(p.pattern if isinstance(p, re.Pattern) else p for p in parts)


PROMPT = _key("css", '[data-test-id="prompt-textarea"]')
NEW_CHAT = _key("role", "button", "new chat")
FILE_INPUT = _key("css", 'input[type="file"]')
HIDDEN_UPLOAD = _key("css", '[data-test-id="hidden-local-image-upload-button"]')
MODE_BUTTON = _key("role", "button", "Fast")
FAST_OPTION = _key("role", "option", "^Fast$")
DOWNLOAD = _key("role", "button", "download full size")
SIGNED_IN = _key("css", '[data-test-id="bard-mode-menu-button"]')
SEND = _key("css", '[data-test-id*="send" i]')


class FakeLocator:
    def __init__(self, page, key):
        self.page = page
        self.key = key

    @property
    def first(self):
        return self

    def is_visible(self):
        return self.key in self.page.visible

    def count(self):
        return int(self.key in self.page.visible or self.key in self.page.present)

    def click(self, force=False):
        self.page.clicks.append(self.key)
        hook = self.page.on_click.get(self.key)
        if hook:
            hook()

    def fill(self, text):
        self.page.filled.append((self.key, text))

    def set_input_files(self, path):
        self.page.uploads.append((self.key, path))

    def get_attribute(self, name, timeout=None):
        return None

    def wait_for(self, state="visible", timeout=None):
        raise PlaywrightTimeout(f"{self.key} not {state}")


class FakeHandle:
    def __init__(self, element):
        self.element = element
        self.disposed = False

    def as_element(self):
        return self.element

    def dispose(self):
        self.disposed = True


class FakeChooser:
    def __init__(self, page):
        self.page = page

    def set_files(self, path):
        self.page.uploads.append(("chooser", path))


class FakeDownload:
    def __init__(self, payload):
        self.payload = payload

    def save_as(self, path):
        with open(path, "wb") as f:
            f.write(self.payload)


class _Info:
    def __init__(self, value):
        self.value = value


class FakeKeyboard:
    def __init__(self):
        self.pressed = []

    def press(self, key):
        self.pressed.append(key)


class FakePage:
    url = "https://gemini.example/app"

    def __init__(self):
        self.visible = set()
        self.present = set()
        self.on_click = {}
        self.clicks = []
        self.filled = []
        self.uploads = []
        self.keyboard = FakeKeyboard()
        self.shadow_element = None
        self.handles = []
        self.download_payload = b"result"

    def locator(self, selector):
        return FakeLocator(self, _key("css", selector))

    def get_by_role(self, role, name=None):
        return FakeLocator(self, _key("role", role, name))

    def get_by_placeholder(self, text):
        return FakeLocator(self, _key("placeholder", text))

    def get_by_text(self, text):
        return FakeLocator(self, _key("text", text))

    def evaluate_handle(self, script):
        handle = FakeHandle(self.shadow_element)
        self.handles.append(handle)
        return handle

    @contextmanager
    def expect_file_chooser(self, timeout=None):
        yield _Info(FakeChooser(self))

    @contextmanager
    def expect_download(self, timeout=None):
        yield _Info(FakeDownload(self.download_payload))


@pytest.fixture(autouse=True)
def _short_waits(monkeypatch):
    monkeypatch.setattr(gemini, "SEND_TIMEOUT", 0)
    monkeypatch.setattr(gemini, "MENU_TIMEOUT", 0)


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def surface(page, make_config):
    return GeminiSurface(page, make_config())


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "a.jpg"
    path.write_bytes(b"source")
    return str(path)


# ── ensure_ready ─────────────────────────────────────────────────────────

def test_ensure_ready_when_prompt_already_visible(page, surface):
    page.visible.add(PROMPT)
    surface.ensure_ready()
    assert page.clicks == []


def test_ensure_ready_opens_new_chat(page, surface):
    page.visible.add(NEW_CHAT)
    page.on_click[NEW_CHAT] = lambda: page.visible.add(PROMPT)
    surface.ensure_ready()
    assert page.clicks == [NEW_CHAT]


def test_ensure_ready_times_out(surface):
    with pytest.raises(CapabilityTimeout):
        surface.ensure_ready()


# ── ensure_authenticated ─────────────────────────────────────────────────

def test_ensure_authenticated_short_circuits(page, surface):
    page.visible.add(SIGNED_IN)
    surface.ensure_authenticated()


def test_ensure_authenticated_times_out_without_login(page, surface):
    page.visible.add(_key("role", "link", "sign in"))
    with pytest.raises(CapabilityTimeout):
        surface.ensure_authenticated()


# ── select_mode ──────────────────────────────────────────────────────────

def test_select_mode_without_selector_is_not_a_failure(page, surface):
    surface.select_mode("Fast")
    assert page.clicks == []


def test_select_mode_clicks_option(page, surface):
    page.visible.add(MODE_BUTTON)
    page.on_click[MODE_BUTTON] = lambda: page.visible.add(FAST_OPTION)
    surface.select_mode("Fast")
    assert page.clicks == [MODE_BUTTON, FAST_OPTION]


def test_select_mode_already_active_counts_as_confirmed(page, surface):
    page.visible.add(MODE_BUTTON)
    surface.select_mode("Fast")
    assert page.keyboard.pressed == ["Escape"]


def test_select_mode_missing_confirmation_fails(page, surface):
    generic = _key("css", '[aria-label*="mode" i]')
    page.visible.add(generic)
    with pytest.raises(CapabilityTimeout):
        surface.select_mode("Fast")


# ── submit_file ──────────────────────────────────────────────────────────

def test_submit_file_prefers_direct_input(page, surface, image):
    page.present.add(FILE_INPUT)
    page.present.add(HIDDEN_UPLOAD)
    surface.submit_file(image)
    assert page.uploads == [(FILE_INPUT, image)]


def test_submit_file_falls_back_to_shadow_input(page, surface, image):
    shadow = FakeLocator(page, ("shadow",))
    page.shadow_element = shadow
    surface.submit_file(image)
    assert page.uploads == [(("shadow",), image)]
    assert all(handle.disposed for handle in page.handles)


def test_submit_file_falls_back_to_hidden_button_chooser(page, surface, image):
    page.present.add(HIDDEN_UPLOAD)
    surface.submit_file(image)
    assert page.clicks == [HIDDEN_UPLOAD]
    assert page.uploads == [("chooser", image)]


def test_submit_file_uses_upload_menu_last(page, surface, image):
    button = _key("role", "button", "upload")
    menu_item = _key("role", "menuitem", "upload image")
    page.visible.add(button)
    page.on_click[button] = lambda: page.visible.add(menu_item)
    surface.submit_file(image)
    assert page.clicks == [button, menu_item]
    assert page.uploads == [("chooser", image)]


def test_submit_file_rejected_when_nothing_accepts(page, surface, image):
    with pytest.raises(SubmissionRejected):
        surface.submit_file(image)


def test_submit_file_missing_local_file(surface, tmp_path):
    with pytest.raises(SubmissionRejected):
        surface.submit_file(str(tmp_path / "gone.jpg"))


# ── prompt / send ────────────────────────────────────────────────────────

def test_submit_prompt_fills_input(page, surface):
    page.visible.add(PROMPT)
    surface.submit_prompt("make it bigger")
    assert page.filled == [(PROMPT, "make it bigger")]


def test_send_clicks_button(page, surface):
    page.visible.add(SEND)
    surface.send()
    assert page.clicks == [SEND]
    assert page.keyboard.pressed == []


def test_send_falls_back_to_enter(page, surface):
    surface.send()
    assert page.keyboard.pressed == ["Enter"]


# ── completion / retrieval ───────────────────────────────────────────────

def test_await_completion_without_loading_indicator(page, surface):
    page.visible.add(DOWNLOAD)
    surface.await_completion()


def test_await_completion_times_out(surface):
    with pytest.raises(CapabilityTimeout):
        surface.await_completion()


def test_retrieve_result_saves_download(page, surface, tmp_path):
    page.visible.add(DOWNLOAD)
    destination = tmp_path / "a_upscaled.jpg"
    surface.retrieve_result(str(destination))
    assert destination.read_bytes() == b"result"
    assert page.clicks == [DOWNLOAD]


def test_retrieve_result_rejects_empty_download(page, surface, tmp_path):
    page.visible.add(DOWNLOAD)
    page.download_payload = b""
    destination = tmp_path / "a_upscaled.jpg"
    with pytest.raises(EmptyResult):
        surface.retrieve_result(str(destination))
    assert not os.path.exists(destination)


def test_capture_debug_writes_artifacts(page, surface, output_dir):
    def screenshot(path, full_page, timeout):
        with open(path, "wb") as f:
            f.write(b"png")

    page.screenshot = screenshot
    page.content = lambda: "<html></html>"

    written = surface.capture_debug("a.jpg-attempt-1-upload")

    assert len(written) == 3
    suffixes = sorted(os.path.basename(p).split(".", 1)[1] for p in written)
    assert suffixes == ["html", "png", "url.txt"]
    assert all(os.path.dirname(p) == str(output_dir) for p in written)


def test_capture_debug_never_raises(page, surface):
    written = surface.capture_debug("broken page")
    # FakePage has no screenshot()/content(); only the URL survives
    assert len(written) == 1
