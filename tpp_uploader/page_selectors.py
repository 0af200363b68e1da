# File: tpp_uploader/page_selectors.py
# Every selector the workflow touches. A portal layout change should only
# need edits here.

# Login (Keycloak form behind the landing page button)
LOGIN_BUTTON = ".btn-login"
LOGIN_USERNAME = "#username"
LOGIN_PASSWORD = "#password"
LOGIN_OTP = "#otp"
LOGIN_SUBMIT = "#kc-login"

# Navbar user indicator; its text contains AUTH_MARKER only when logged in.
NAVBAR_USER = ".navbar-user"
AUTH_MARKER = "Account"

# Upload form on the build list page
UPLOAD_TRIGGER = "#user_build_upload_file"
UPLOAD_COMMIT = "input[name='commit']"

# Build table. Row 0 is the most recent build.
BUILD_ROWS = "table.table-full-width tbody tr"
ROW_UPDATE_CELL = "td:nth-child(2)"
ROW_STATUS_CELL = "td:nth-child(3) span"
ROW_DOWNLOAD_LINK = "td:last-child a"

DOWNLOAD_LINK = f"{BUILD_ROWS}:first-child {ROW_DOWNLOAD_LINK}"
