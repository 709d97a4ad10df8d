from datetime import date

import pytest

from dms_reporter.config import DEFAULT_ALERT_LABELS, RunConfig
from dms_reporter.report_downloader import page_selectors
from dms_reporter.report_downloader.errors import ElementNotFound
from dms_reporter.report_downloader.models import ReportTabHandle
from dms_reporter.report_downloader.report_config import ReportSequencer, configure_and_export
from fakes import FakePage, SleepRecorder, logged_events, make_logger, run

YAWNING, EYES_CLOSED = DEFAULT_ALERT_LABELS
REPORT_DATE = date(2024, 5, 1)


def _config(**overrides) -> RunConfig:
    return RunConfig(gps_user="u", gps_password="p").with_overrides(**overrides)


def _report_page(*, alert_labels=(YAWNING, EYES_CLOSED), dms_available=True) -> FakePage:
    present = {
        page_selectors.ALERT_TYPE_DROPDOWN[0][1],
        page_selectors.START_DATE_INPUT[0][1],
        page_selectors.END_DATE_INPUT[0][1],
    }
    present.update(page_selectors.alert_option(label) for label in alert_labels)
    if dms_available:
        present.add(page_selectors.DMS_REPORT_BUTTONS[0][1])
    return FakePage(
        url="https://cctvwli.com:3001/report",
        present=present,
        scripts={
            page_selectors.SEARCH_ICON_TEST_ID: True,
            ("button", page_selectors.EXPORT_LABEL): True,
            page_selectors.SAVE_BUTTON_CSS: True,
        },
    )


def _sequencer(page: FakePage, sleep=None, **overrides):
    logger, stream = make_logger()
    handle = ReportTabHandle(page=page, url=page.url)
    sequencer = ReportSequencer(handle, _config(**overrides), logger=logger, sleep=sleep or SleepRecorder())
    return sequencer, stream


def test_full_sequence_runs_every_stage_in_order():
    page = _report_page()
    logger, _ = make_logger()
    sleep = SleepRecorder()
    handle = ReportTabHandle(page=page, url=page.url)

    report = run(configure_and_export(handle, _config(), REPORT_DATE, logger=logger, sleep=sleep))

    assert report.stages == [
        "select_report_type",
        "choose_alert_filters",
        "set_time_range",
        "trigger_search",
        "trigger_export",
        "confirm_save",
    ]
    assert (report.start, report.end) == ("2024-05-01 06:00:00", "2024-05-01 18:00:00")
    assert report.selected_alerts == [YAWNING, EYES_CLOSED]
    assert report.missing_alerts == []
    # report generation and save dialog are fixed waits
    assert 120.0 in sleep.calls
    assert 20.0 in sleep.calls
    assert page.evaluations == [
        page_selectors.SEARCH_ICON_TEST_ID,
        ("button", page_selectors.EXPORT_LABEL),
        page_selectors.SAVE_BUTTON_CSS,
    ]


def test_time_range_replaces_input_contents_with_keyboard():
    page = _report_page()
    sequencer, _ = _sequencer(page)

    run(sequencer.set_time_range("2024-05-01 06:00:00", "2024-05-01 18:00:00"))

    assert page.clicks == [page_selectors.START_DATE_INPUT[0][1], page_selectors.END_DATE_INPUT[0][1]]
    assert page.keyboard.events == [
        ("press", "Control+A"),
        ("press", "Backspace"),
        ("type", "2024-05-01 06:00:00"),
        ("press", "Enter"),
        ("press", "Control+A"),
        ("press", "Backspace"),
        ("type", "2024-05-01 18:00:00"),
        ("press", "Enter"),
    ]


def test_alert_label_falls_back_to_english():
    page = _report_page(alert_labels=("Yawning", EYES_CLOSED))
    sequencer, _ = _sequencer(page)

    selected, missing = run(sequencer.choose_alert_filters())

    assert selected == ["Yawning", EYES_CLOSED]
    assert missing == []
    assert page.keyboard.events == [("press", "Escape")]


def test_missing_alert_labels_only_warn():
    page = _report_page(alert_labels=())
    sequencer, stream = _sequencer(page)

    selected, missing = run(sequencer.choose_alert_filters())

    assert selected == []
    assert missing == [YAWNING, EYES_CLOSED]
    warnings = [
        entry for entry in logged_events(stream)
        if entry["status"] == "warn" and entry["message"].startswith("alert option not found")
    ]
    assert [entry["label"] for entry in warnings] == [YAWNING, EYES_CLOSED]


def test_missing_dms_button_aborts_before_later_stages():
    page = _report_page(dms_available=False)
    logger, _ = make_logger()
    handle = ReportTabHandle(page=page, url=page.url)

    with pytest.raises(ElementNotFound) as excinfo:
        run(configure_and_export(handle, _config(), REPORT_DATE, logger=logger, sleep=SleepRecorder()))

    assert excinfo.value.description == "DMS report button"
    assert page.keyboard.events == []
    assert page_selectors.ALERT_TYPE_DROPDOWN[0][1] not in page.clicks


def test_dms_button_found_by_later_strategy():
    page = _report_page(dms_available=False)
    page.present.add(page_selectors.DMS_REPORT_BUTTONS[2][1])
    sequencer, _ = _sequencer(page)

    found = run(sequencer.select_report_type())

    assert found.strategy == "button_text"
    assert page.lookups == [selector for _, selector in page_selectors.DMS_REPORT_BUTTONS]


def test_export_is_retried_then_gives_up():
    page = _report_page()
    page.scripts.pop(("button", page_selectors.EXPORT_LABEL))
    sleep = SleepRecorder()
    sequencer, _ = _sequencer(page, sleep=sleep)

    with pytest.raises(ElementNotFound) as excinfo:
        run(sequencer.trigger_export())

    assert str(excinfo.value) == "Element not found: Excel Button (after multiple attempts)"
    assert sleep.calls == [5.0, 5.0]
    assert page.evaluations.count(("button", page_selectors.EXPORT_LABEL)) == 3


def test_export_succeeds_on_second_attempt():
    page = _report_page()
    attempts = []

    def excel_click():
        attempts.append(True)
        return len(attempts) >= 2

    page.scripts[("button", page_selectors.EXPORT_LABEL)] = excel_click
    sleep = SleepRecorder()
    sequencer, _ = _sequencer(page, sleep=sleep)

    found = run(sequencer.trigger_export())

    assert found.strategy == "js:excel_text"
    assert sleep.calls == [5.0]
