# File: report_downloader/page_selectors.py
# Login form (dvrai.net 808gps)
LOGIN_CAPTCHA_IMAGE = "#lwm"
LOGIN_ACCOUNT = "#loginAccount"
LOGIN_PASSWORD = "#loginPassword"
LOGIN_CAPTCHA_INPUT = "#phraseLogin"
LOGIN_SUBMIT = "#loginSubmit"
LOGIN_PATH_MARKER = "login.html"

# Dashboard header entry that opens the Report Center in a new tab
REPORT_CENTER_ONCLICK = "div[onclick*='showReportCenter']"
REPORT_CENTER_HEADER_NAV = "#main-topPanel > div.header-nav > div:nth-child(7)"
REPORT_CENTER_FUNCTION = "showReportCenter"

# Chromium interstitial pages
INTERSTITIAL_TITLE_MARKERS = ("Privacy error", "Deceptive", "Security", "not private")
INTERSTITIAL_DETAILS_BUTTON = "#details-button"
INTERSTITIAL_PROCEED_LINK = "#proceed-link"

# Report Center (React / MUI single-page app)
REPORT_ROOT = "#root"
REPORT_FORM_CLASS = "css-xn5mga"

DMS_REPORT_LABEL = "รายงาน DMS"
DMS_REPORT_BUTTONS = (
    ("face_icon_test_id", "xpath=//*[local-name()='svg' and @data-testid='FaceIcon']/.."),
    ("toolbar_second_button", "xpath=//*[@id='root']/div/div[2]/div[1]/div/button[2]"),
    ("button_text", f"xpath=//button[contains(., '{DMS_REPORT_LABEL}')]"),
)

ALERT_TYPE_DROPDOWN = (
    ("alert_row_select", f"xpath=//div[contains(@class, '{REPORT_FORM_CLASS}')]//tr[2]//td[2]//div/div"),
)

START_DATE_INPUT = (
    ("start_input", f"xpath=//div[contains(@class, '{REPORT_FORM_CLASS}')]//tr[3]//td[2]//input"),
)
END_DATE_INPUT = (
    ("end_input", f"xpath=//div[contains(@class, '{REPORT_FORM_CLASS}')]//tr[3]//td[4]//input"),
)

SEARCH_ICON_TEST_ID = "SearchIcon"
SEARCH_BUTTON_CLASS = ".css-1hw9j7s"
SEARCH_BUTTONS = (
    ("search_icon_parent", "xpath=//*[@data-testid='SearchIcon']/.."),
)

EXPORT_LABEL = "EXCEL"
EXPORT_SUCCESS_CLASS = "MuiButton-containedSuccess"
EXPORT_BUTTONS = (
    ("excel_button_text", f"xpath=//button[contains(text(), '{EXPORT_LABEL}')]"),
    ("success_button_class", f"xpath=//button[contains(@class, '{EXPORT_SUCCESS_CLASS}')]"),
)

SAVE_BUTTON_CSS = (
    "#root > div > div.MuiBox-root.css-jbmhbb > div.ant-card.ant-card-bordered.css-y8x9xp"
    " > div.ant-card-body > div > div > div > ul > li > div > div > div > div > button"
)
SAVE_BUTTONS = (
    ("save_icon_test_id", "xpath=//*[@data-testid='SaveOutlinedIcon']/ancestor::button[1]"),
    (
        "save_structural",
        "xpath=//*[@id='root']/div/div[1]/div[2]/div[2]/div/div/div/ul/li/div/div/div/div/button",
    ),
)


def alert_option(label: str) -> str:
    return f"xpath=//div[contains(text(), '{label}')]"
