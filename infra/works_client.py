# infra/works_client.py
import logging
import requests

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://www.worksapis.com/v1.0"


class WorksApiError(RuntimeError):
    """LINE WORKS answered with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body


class WorksClient:
    """
    Bot message API of LINE WORKS.

    One POST per call; a rejected call raises WorksApiError, a network
    problem raises whatever requests raises.
    """

    def __init__(self, bot_id: str, api_base: str = DEFAULT_API_BASE,
                 timeout: float = 15, session: requests.Session | None = None):
        self.bot_id = bot_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def send_to_user(self, token: str, user_id: str, text: str) -> dict:
        return self._post(token, f"users/{user_id}/messages", text)

    def send_to_channel(self, token: str, channel_id: str, text: str) -> dict:
        return self._post(token, f"channels/{channel_id}/messages", text)

    def send(self, token: str, target, text: str) -> dict:
        if target.kind == "group":
            return self.send_to_channel(token, target.id, text)
        return self.send_to_user(token, target.id, text)

    def _post(self, token: str, path: str, text: str) -> dict:
        if not self.bot_id:
            raise RuntimeError("WORKS_BOT_ID is not set")

        url = f"{self.api_base}/bots/{self.bot_id}/{path}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type":  "application/json",
        }
        body = {"content": {"type": "text", "text": text}}

        logger.debug("[WORKS] POST %s", url)
        resp = self.session.post(url, headers=headers, json=body, timeout=self.timeout)
        # 1xx and 3xx are not deliveries either
        if not 200 <= resp.status_code < 300:
            logger.debug("[WORKS] %s -> %s %s", url, resp.status_code, resp.text[:300])
            raise WorksApiError(resp.status_code, resp.text)

        # 201 with an empty body is the normal answer
        try:
            return resp.json() if resp.content else {}
        except ValueError:
            return {"http_status": resp.status_code, "text": resp.text}
