"""OAuth token handling for the Gmail API."""

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from subscription_scanner.constants import CONFIG_DIR, CREDENTIALS_PATH, SCOPES, TOKEN_PATH, USER_ID


def get_credentials(interactive: bool = True) -> Credentials:
    """Return valid OAuth credentials for read-only Gmail access.

    Loads the cached token from TOKEN_PATH and refreshes it when expired.
    Without a usable token, the browser consent flow runs (requires the
    OAuth client file at CREDENTIALS_PATH) unless ``interactive`` is off.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    creds: Credentials | None = None

    if TOKEN_PATH.exists():
        creds = Credentials.from_authorized_user_file(str(TOKEN_PATH), SCOPES)

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    elif not creds or not creds.valid:
        if not interactive:
            raise FileNotFoundError(f"No usable token at {TOKEN_PATH}. Run the 'auth' command first.")
        if not CREDENTIALS_PATH.exists():
            raise FileNotFoundError(
                f"Credentials file not found at {CREDENTIALS_PATH}.\n"
                "Download your OAuth client credentials from the Google Cloud Console "
                "and save them as:\n"
                f"  {CREDENTIALS_PATH}"
            )
        flow = InstalledAppFlow.from_client_secrets_file(str(CREDENTIALS_PATH), SCOPES)
        creds = flow.run_local_server(port=0)

    TOKEN_PATH.write_text(creds.to_json())
    return creds


def get_access_token(interactive: bool = True) -> str:
    """Bearer token for the Gmail API, refreshed if needed."""
    return get_credentials(interactive=interactive).token


def check_auth() -> bool:
    """Test whether Gmail authentication is working.

    Returns True when the profile endpoint answers, False otherwise.
    Prints human-readable status messages.
    """
    try:
        service = build("gmail", "v1", credentials=get_credentials(), cache_discovery=False)
        profile = service.users().getProfile(userId=USER_ID).execute()
        print(f"Authenticated as {profile['emailAddress']}")
        return True
    except FileNotFoundError as exc:
        print(f"Authentication failed: {exc}")
        return False
    except Exception as exc:  # noqa: BLE001
        print(f"Authentication failed: {exc}")
        return False
