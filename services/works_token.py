# services/works_token.py
import os
import time
import logging
from urllib.parse import urlencode

import requests
from dotenv import find_dotenv, load_dotenv, set_key

logger = logging.getLogger(__name__)

DEFAULT_AUTH_BASE = "https://auth.worksmobile.com/oauth2/v2.0"
DEFAULT_EXPIRES_IN = 86400      # LINE WORKS access tokens live 24h
EXPIRY_MARGIN = 60


class WorksAuthError(RuntimeError):
    pass


def _short(token: str | None) -> str:
    return (token or "")[:8] + "..."


class WorksTokenManager:
    """
    OAuth2 tokens for the LINE WORKS API.

    - exchange_code(): authorization code from the login callback -> tokens
    - get_server_access_token(): cached access token, refreshed when it is
      about to expire
    Tokens are mirrored into .env so a cron process and the web process share
    the latest refresh token.
    """

    def __init__(self, client_id, client_secret, redirect_uri=None, scope="bot",
                 auth_base=DEFAULT_AUTH_BASE, refresh_token=None,
                 dotenv_path=None, timeout=10, clock=time.time):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.auth_base = auth_base.rstrip("/")
        self.dotenv_path = dotenv_path
        self.timeout = timeout
        self.clock = clock
        self.cache = {
            "access_token":  None,
            "refresh_token": refresh_token,
            "expires_at":    0,
        }

    @classmethod
    def from_config(cls, config):
        return cls(
            client_id=config.get("WORKS_CLIENT_ID"),
            client_secret=config.get("WORKS_CLIENT_SECRET"),
            redirect_uri=config.get("WORKS_REDIRECT_URI"),
            scope=config.get("WORKS_SCOPE") or "bot",
            auth_base=config.get("WORKS_AUTH_BASE") or DEFAULT_AUTH_BASE,
            refresh_token=config.get("WORKS_REFRESH_TOKEN"),
            dotenv_path=config.get("DOTENV_PATH"),
        )

    @property
    def token_url(self) -> str:
        return f"{self.auth_base}/token"

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id":     self.client_id,
            "redirect_uri":  self.redirect_uri,
            "response_type": "code",
            "scope":         self.scope,
            "state":         state,
        }
        return f"{self.auth_base}/authorize?{urlencode(params)}"

    def exchange_code(self, code: str) -> dict:
        """authorization_code grant. Returns the token payload."""
        if not code:
            raise WorksAuthError("authorization code is empty")
        return self._request_token({
            "grant_type":    "authorization_code",
            "code":          code,
            "client_id":     self.client_id,
            "client_secret": self.client_secret,
        })

    def get_server_access_token(self) -> str:
        """
        - reuse the cached access token while it is valid
        - otherwise refresh it with the refresh token
        """
        self._reload_env()

        now = self.clock()
        if self.cache["access_token"] and now < self.cache["expires_at"] - EXPIRY_MARGIN:
            return self.cache["access_token"]

        refresh_token = self.cache.get("refresh_token")
        if not refresh_token:
            logger.error("[WORKS] refresh token not set")
            raise WorksAuthError("LINE WORKS refresh token not set; log in first")

        payload = self._request_token({
            "grant_type":    "refresh_token",
            "refresh_token": refresh_token,
            "client_id":     self.client_id,
            "client_secret": self.client_secret,
        })
        return payload["access_token"]

    def _reload_env(self):
        # pick up tokens another process wrote to .env
        path = self.dotenv_path or find_dotenv(usecwd=True)
        if path:
            try:
                load_dotenv(path, override=True)
            except Exception:
                logger.exception("[WORKS] .env reload failed")

        rt_env = os.environ.get("WORKS_REFRESH_TOKEN")
        if rt_env and rt_env != self.cache.get("refresh_token"):
            logger.info("[WORKS] refresh token changed in env: %s -> %s",
                        _short(self.cache.get("refresh_token")), _short(rt_env))
            self.cache["refresh_token"] = rt_env
            # the cached access token may belong to the old grant
            self.cache["expires_at"] = 0

    def _request_token(self, data: dict) -> dict:
        grant = data["grant_type"]
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        logger.debug("[WORKS] token request grant=%s client_id=%s", grant, self.client_id)

        try:
            resp = requests.post(self.token_url, data=data, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.exception("[WORKS] token request failed (grant=%s)", grant)
            raise WorksAuthError(f"token request failed: {e}") from e

        logger.debug("[WORKS] token response code=%d", resp.status_code)
        if not 200 <= resp.status_code < 300:
            logger.error("[WORKS] token endpoint rejected grant=%s: %s %s",
                         grant, resp.status_code, resp.text[:300])
            raise WorksAuthError(f"token endpoint returned HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise WorksAuthError("token endpoint returned a non-JSON body") from e

        if not payload.get("access_token"):
            logger.error("[WORKS] access_token missing: %s", payload)
            raise WorksAuthError("LINE WORKS access_token not returned")

        self._store(payload)
        return payload

    def _store(self, payload: dict):
        new_at = payload["access_token"]
        new_rt = payload.get("refresh_token") or self.cache.get("refresh_token")
        try:
            expires_in = int(payload.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        self.cache.update({
            "access_token":  new_at,
            "refresh_token": new_rt,
            "expires_at":    self.clock() + expires_in,
        })
        if new_rt:
            os.environ["WORKS_REFRESH_TOKEN"] = new_rt
        logger.info("[WORKS] token updated - expires in %ds", expires_in)

        # .env sync; the in-memory cache is already current if this fails
        path = self.dotenv_path or find_dotenv(usecwd=True)
        if not path:
            return
        try:
            set_key(path, "WORKS_ACCESS_TOKEN", new_at)
            if new_rt:
                set_key(path, "WORKS_REFRESH_TOKEN", new_rt)
            logger.info("[WORKS] .env tokens synced: %s, %s", _short(new_at), _short(new_rt))
        except Exception:
            logger.exception("[WORKS] writing tokens to .env failed")
