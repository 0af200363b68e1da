import asyncio
import io
from pathlib import Path

from tpp_uploader.json_logger import JsonLogger
from tpp_uploader.session import PortalSession


class FakeLocator:
    def __init__(self, texts: list[str]):
        self._texts = texts

    async def count(self) -> int:
        return len(self._texts)

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self._texts[:1])

    async def text_content(self) -> str | None:
        return self._texts[0] if self._texts else None


class FakeEventInfo:
    def __init__(self, value):
        self._value = value

    @property
    def value(self):
        async def _resolve():
            return self._value

        return _resolve()


class FakeExpectation:
    def __init__(self, page, kind, value=None, **kwargs):
        self.page = page
        self.kind = kind
        self.info = FakeEventInfo(value)
        page.expectations.append((kind, kwargs))

    async def __aenter__(self):
        return self.info

    async def __aexit__(self, *exc):
        return False


class FakeFileChooser:
    def __init__(self):
        self.files = None

    async def set_files(self, files):
        self.files = files


class FakeCdpSession:
    def __init__(self):
        self.sent = []

    async def send(self, method, params=None):
        self.sent.append((method, params))
        if method == "Target.getTargetInfo":
            return {"targetInfo": {"targetId": "page-1", "browserContextId": "ctx-1"}}
        return {}


class FakeContext:
    def __init__(self):
        self.cdp = FakeCdpSession()

    async def new_cdp_session(self, page):
        return self.cdp


class FakeKeyboard:
    def __init__(self):
        self.pressed = []

    async def press(self, key):
        self.pressed.append(key)


class FakeResponse:
    status = 200


class FakePage:
    def __init__(self, *, texts=None):
        self.url = "about:blank"
        self._texts = texts or {}
        self.expectations = []
        self.clicked = []
        self.chooser = FakeFileChooser()
        self.context = FakeContext()
        self.keyboard = FakeKeyboard()
        self.eval_calls = []

    async def goto(self, url, wait_until="load", timeout=None):
        self.url = url
        return FakeResponse()

    async def click(self, selector):
        self.clicked.append(selector)

    def locator(self, selector):
        return FakeLocator(self._texts.get(selector, []))

    async def eval_on_selector_all(self, selector, expression, arg=None):
        self.eval_calls.append((selector, arg))
        return ["Success", "Failed"]

    def expect_file_chooser(self, timeout=None):
        return FakeExpectation(self, "filechooser", self.chooser, timeout=timeout)

    def expect_navigation(self, wait_until=None, timeout=None):
        return FakeExpectation(self, "navigation", wait_until=wait_until, timeout=timeout)


class FakeBrowser:
    def __init__(self):
        self.close_calls = 0

    async def close(self):
        self.close_calls += 1


def run(coro):
    return asyncio.run(coro)


def _session(page, browser=None):
    return PortalSession(
        page=page,
        browser=browser or FakeBrowser(),
        logger=JsonLogger(run_id="test", stream=io.StringIO()),
        navigation_timeout_ms=12_000,
    )


def test_read_text_returns_none_when_element_absent():
    assert run(_session(FakePage()).read_text(".navbar-user")) is None


def test_read_text_strips_first_match():
    page = FakePage(texts={".navbar-user": ["  My Account \n", "other"]})

    assert run(_session(page).read_text(".navbar-user")) == "My Account"


def test_read_column_passes_cell_selector_to_page():
    page = FakePage()

    values = run(_session(page).read_column("tbody tr", "td:nth-child(3) span"))

    assert values == ["Success", "Failed"]
    assert page.eval_calls == [("tbody tr", "td:nth-child(3) span")]


def test_click_and_wait_for_navigation_uses_navigation_timeout():
    page = FakePage()

    run(_session(page).click_and_wait_for_navigation("#kc-login"))

    assert page.clicked == ["#kc-login"]
    assert page.expectations == [("navigation", {"wait_until": "domcontentloaded", "timeout": 12_000})]


def test_choose_files_clicks_trigger_inside_chooser_wait(tmp_path):
    page = FakePage()
    plugin = tmp_path / "plugin.zip"

    run(_session(page).choose_files("#upload", [plugin], 2000))

    assert page.expectations == [("filechooser", {"timeout": 2000})]
    assert page.clicked == ["#upload"]
    assert page.chooser.files == [str(plugin)]


def test_bind_download_dir_targets_the_page_context(tmp_path):
    page = FakePage()

    run(_session(page).bind_download_dir(tmp_path))

    assert page.context.cdp.sent == [
        ("Target.getTargetInfo", None),
        (
            "Browser.setDownloadBehavior",
            {
                "behavior": "allow",
                "browserContextId": "ctx-1",
                "downloadPath": str(Path(tmp_path).resolve()),
            },
        ),
    ]


def test_press_and_navigate():
    page = FakePage()
    session = _session(page)

    run(session.navigate("https://tak.gov/user_builds"))
    run(session.press("End"))

    assert session.url == "https://tak.gov/user_builds"
    assert page.keyboard.pressed == ["End"]


def test_close_is_idempotent():
    browser = FakeBrowser()
    session = _session(FakePage(), browser)

    run(session.close())
    run(session.close())

    assert browser.close_calls == 1
    assert session.closed is True
