# infra/google_client.py
import os
import json
import base64
import logging
from functools import lru_cache
from google.oauth2 import service_account
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

ENV_RAW_OR_B64 = ("GOOGLE_CREDENTIALS_JSON", "GOOGLE_SHEET_CREDENTIAL")
ENV_PATH_ONLY  = ("GOOGLE_SHEET_CREDENTIAL", "GOOGLE_APPLICATION_CREDENTIALS")

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

def _b64decode_with_padding(s: str) -> bytes:
    t = s.strip().replace("\n", "").replace(" ", "")
    missing = (-len(t)) % 4
    if missing:
        t += "=" * missing
    return base64.b64decode(t)

def _looks_like_path(val: str) -> bool:
    return val.endswith(".json") or (os.sep in val)

def _read_json_file(var: str, path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            info = json.load(f)
    except Exception as e:
        raise RuntimeError(f"{var} file read error: {e}")
    logger.debug("Loaded SA info from %s (file: %s)", var, path)
    return info

def _info_from_split_env() -> dict | None:
    """
    Service account given as separate variables, the private key with
    literal "\\n" sequences (as most dashboards store it).
    """
    email = os.getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL", "").strip()
    key   = os.getenv("GOOGLE_PRIVATE_KEY", "")
    if not (email and key):
        return None
    logger.debug("Loaded SA info from GOOGLE_SERVICE_ACCOUNT_EMAIL/GOOGLE_PRIVATE_KEY")
    return {
        "type":         "service_account",
        "project_id":   os.getenv("GOOGLE_PROJECT_ID", ""),
        "private_key":  key.replace("\\n", "\n"),
        "client_email": email,
        "token_uri":    "https://oauth2.googleapis.com/token",
    }

def _load_gcp_service_account_info() -> dict:
    """
    SA JSON lookup order:
      1) ENV (raw JSON)
      2) ENV (file path)  <- tried first when the value looks like a path
      3) ENV (base64 JSON)
      4) split ENV (email + private key)
      5) path-only ENV
    """
    for var in ENV_RAW_OR_B64:
        val = os.getenv(var, "").strip()
        if not val:
            continue

        # 1) raw JSON
        if val.startswith("{"):
            try:
                info = json.loads(val)
            except Exception as e:
                raise RuntimeError(f"{var} raw json parse error: {e}")
            logger.debug("Loaded SA info from %s (raw JSON)", var)
            return info

        # 2) file path
        if _looks_like_path(val) and os.path.exists(val):
            return _read_json_file(var, val)

        # 3) base64(JSON); fall through to the other sources on failure
        try:
            decoded = _b64decode_with_padding(val).decode("utf-8")
            info = json.loads(decoded)
            logger.debug("Loaded SA info from %s (base64)", var)
            return info
        except Exception:
            logger.debug("%s is not valid base64 JSON, will try other sources.", var)

    # 4) split variables
    info = _info_from_split_env()
    if info:
        return info

    # 5) path-only variables
    for var in ENV_PATH_ONLY:
        path = os.getenv(var, "").strip()
        if path and os.path.exists(path):
            return _read_json_file(var, path)

    raise RuntimeError(
        "No Google credentials found. "
        "Set GOOGLE_CREDENTIALS_JSON (raw/base64), "
        "GOOGLE_SERVICE_ACCOUNT_EMAIL + GOOGLE_PRIVATE_KEY, "
        "or GOOGLE_APPLICATION_CREDENTIALS (path)."
    )

@lru_cache(maxsize=1)
def _get_credentials() -> service_account.Credentials:
    info = _load_gcp_service_account_info()
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)

@lru_cache(maxsize=1)
def _get_sheets_resource():
    creds = _get_credentials()
    svc = build("sheets", "v4", credentials=creds, cache_discovery=False)
    return svc.spreadsheets()

def get_sheets_service():
    return _get_sheets_resource()
