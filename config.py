import os
from dotenv import load_dotenv

load_dotenv()  # load .env

class Config:
    SECRET_KEY            = os.environ.get("FLASK_SECRET_KEY") or os.urandom(24)
    SESSION_COOKIE_DOMAIN = os.environ.get("SESSION_COOKIE_DOMAIN", None)
    LOG_FILE              = os.environ.get("LOG_FILE", "").strip()

    # LINE WORKS OAuth
    WORKS_CLIENT_ID       = os.environ.get("WORKS_CLIENT_ID")
    WORKS_CLIENT_SECRET   = os.environ.get("WORKS_CLIENT_SECRET")
    WORKS_REDIRECT_URI    = os.environ.get("WORKS_REDIRECT_URI")
    WORKS_SCOPE           = os.environ.get("WORKS_SCOPE", "bot")
    WORKS_AUTH_BASE       = os.environ.get("WORKS_AUTH_BASE", "https://auth.worksmobile.com/oauth2/v2.0")
    WORKS_REFRESH_TOKEN   = os.environ.get("WORKS_REFRESH_TOKEN")
    DOTENV_PATH           = os.environ.get("DOTENV_PATH")  # .env that receives rotated tokens

    # LINE WORKS bot
    WORKS_BOT_ID          = os.environ.get("WORKS_BOT_ID")
    WORKS_API_BASE        = os.environ.get("WORKS_API_BASE", "https://www.worksapis.com/v1.0")
    WORKS_HTTP_TIMEOUT    = float(os.environ.get("WORKS_HTTP_TIMEOUT", "15"))

    # Google Sheets
    SPREADSHEET_ID        = os.environ.get("SPREADSHEET_ID", "").strip()
    SHEET_TAB             = os.environ.get("SHEET_TAB", "").strip()

    # schedule sheet vocabulary
    SCHEDULE_TIMEZONE     = os.environ.get("SCHEDULE_TIMEZONE", "Asia/Tokyo")
    STATE_PENDING         = os.environ.get("STATE_PENDING", "送信待機")
    STATE_SENT            = os.environ.get("STATE_SENT", "送信済み")
    HEADER_STATE          = os.environ.get("HEADER_STATE", "状態")
    HEADER_MESSAGE        = os.environ.get("HEADER_MESSAGE", "メッセージ内容")
    HEADER_GROUP          = os.environ.get("HEADER_GROUP", "グループ")
    HEADER_USERS          = os.environ.get("HEADER_USERS", "ユーザーID")
    HEADER_SEND_TIME      = os.environ.get("HEADER_SEND_TIME", "送信時間")

    # shared secret for cron / webhook triggers of /api/send
    DISPATCH_SECRET       = os.environ.get("DISPATCH_SECRET")
