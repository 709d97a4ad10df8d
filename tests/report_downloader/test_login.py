import pytest

from dms_reporter.config import RunConfig
from dms_reporter.report_downloader import page_selectors
from dms_reporter.report_downloader.errors import LoginFailed
from dms_reporter.report_downloader.login import establish_session, is_login_url
from fakes import FakePage, SleepRecorder, logged_events, make_logger, run

LOGIN_URL = "https://dvrai.net/808gps/login.html"
DASHBOARD_URL = "https://dvrai.net/808gps/index.html"


def _config(**overrides) -> RunConfig:
    base = RunConfig(gps_user="fleet-admin", gps_password="s3cret", login_url=LOGIN_URL)
    return base.with_overrides(**overrides)


class ScriptedOcr:
    def __init__(self, codes):
        self.codes = list(codes)
        self.calls = 0

    async def __call__(self, image: bytes) -> str:
        assert image == b"captcha-image"
        code = self.codes[min(self.calls, len(self.codes) - 1)]
        self.calls += 1
        return code


def _login_page(*, leaves_login: bool = True) -> FakePage:
    page = FakePage(present={page_selectors.LOGIN_CAPTCHA_IMAGE})
    if leaves_login:
        page.on_click[page_selectors.LOGIN_SUBMIT] = lambda: setattr(page, "url", DASHBOARD_URL)
    return page


def test_is_login_url():
    assert is_login_url(LOGIN_URL)
    assert is_login_url("")
    assert is_login_url(None)
    assert not is_login_url(DASHBOARD_URL)
    assert not is_login_url("https://dvrai.net/808gps/index.html?from=login.html")


def test_short_captcha_reads_never_submit():
    logger, _ = make_logger()
    page = _login_page()
    ocr = ScriptedOcr(["123", " 1 2 3 ", "4821"])
    sleep = SleepRecorder()

    session = run(establish_session(page, _config(), ocr=ocr, logger=logger, sleep=sleep))

    assert session.authenticated is True
    assert session.attempts == 3
    assert page.clicks.count(page_selectors.LOGIN_SUBMIT) == 1
    assert page.goto_calls == [LOGIN_URL] * 3
    assert page.fills == [
        (page_selectors.LOGIN_ACCOUNT, "fleet-admin"),
        (page_selectors.LOGIN_PASSWORD, "s3cret"),
        (page_selectors.LOGIN_CAPTCHA_INPUT, "4821"),
    ]
    # captcha render settle per attempt, then the dashboard settle
    assert sleep.calls == [2.0, 2.0, 2.0, 10.0]


def test_staying_on_login_page_exhausts_retries():
    logger, stream = make_logger()
    page = _login_page(leaves_login=False)
    ocr = ScriptedOcr(["4821"])

    with pytest.raises(LoginFailed) as excinfo:
        run(
            establish_session(
                page, _config(login_max_retries=4), ocr=ocr, logger=logger, sleep=SleepRecorder()
            )
        )

    assert str(excinfo.value) == "Failed to login after 4 attempts."
    assert excinfo.value.attempts == 4
    assert page.goto_calls == [LOGIN_URL] * 4
    assert page.clicks.count(page_selectors.LOGIN_SUBMIT) == 4
    assert ocr.calls == 4
    events = logged_events(stream)
    assert events[-1]["status"] == "error"
    assert events[-1]["message"] == "login retries exhausted"


def test_attempt_errors_are_retried():
    logger, stream = make_logger()
    page = _login_page()
    page.present.clear()
    ocr = ScriptedOcr(["4821"])

    def captcha_appears():
        page.present.add(page_selectors.LOGIN_CAPTCHA_IMAGE)

    goto = page.goto

    async def goto_then_render(url, **kwargs):
        await goto(url, **kwargs)
        if len(page.goto_calls) == 2:
            captcha_appears()

    page.goto = goto_then_render

    session = run(establish_session(page, _config(), ocr=ocr, logger=logger, sleep=SleepRecorder()))

    assert session.attempts == 2
    failures = [entry for entry in logged_events(stream) if entry["message"] == "login attempt failed"]
    assert len(failures) == 1
    assert failures[0]["attempt"] == 1
