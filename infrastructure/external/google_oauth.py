"""
Google OAuth 客户端

- 生成授权跳转地址
- 用授权码换取 ID token（httpx + tenacity 重试）
- 校验 ID token 签名与受众（PyJWT + Google JWKS）
"""
import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
import jwt
from jwt import PyJWKClient
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config import settings, GoogleOAuthSettings
from core.logging_config import get_logger


logger = get_logger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
ISSUERS = ("accounts.google.com", "https://accounts.google.com")
SCOPES = ("openid", "profile", "email")

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class GoogleOAuthError(Exception):
    """Google OAuth 调用失败"""


class _RetryableTokenError(GoogleOAuthError):
    pass


class GoogleOAuthClient:
    """Authorization-code flow against Google's OAuth 2.0 endpoints."""

    def __init__(self, config: Optional[GoogleOAuthSettings] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 jwks_client: Optional[PyJWKClient] = None) -> None:
        self.config = config or settings.google
        self._client = http_client
        self._jwks_client = jwks_client

    @property
    def configured(self) -> bool:
        return self.config.configured

    def authorization_url(self, state: Optional[str] = None) -> str:
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "select_account",
        }
        if state:
            params["state"] = state
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """用授权码换取 ID token；Google 未返回 ID token 时抛出 GoogleOAuthError"""
        form = {
            "code": code,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": self.config.redirect_uri,
            "grant_type": "authorization_code",
        }

        async def _send_once() -> Dict[str, Any]:
            client = self._get_client()
            response = await client.post(TOKEN_URL, data=form, headers={"Accept": "application/json"})
            if response.status_code in RETRY_STATUS_CODES:
                raise _RetryableTokenError(f"Transient token endpoint error {response.status_code}")
            if response.status_code >= 400:
                raise GoogleOAuthError(f"Token exchange failed with status {response.status_code}")
            return response.json()

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.config.max_retry_attempts)),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, _RetryableTokenError)),
            before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    payload = await _send_once()
        except httpx.HTTPError as exc:
            raise GoogleOAuthError(f"Token exchange request failed: {exc}") from exc

        id_token = payload.get("id_token") if isinstance(payload, dict) else None
        if not id_token:
            raise GoogleOAuthError("Google did not return an ID token.")
        return id_token

    async def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """校验签名、受众与签发者，返回 claims"""
        try:
            return await asyncio.to_thread(self._decode, id_token)
        except jwt.PyJWTError as exc:
            logger.warning("google_id_token_invalid", error=str(exc))
            raise GoogleOAuthError("Unable to verify Google account.") from exc

    def _decode(self, id_token: str) -> Dict[str, Any]:
        signing_key = self._get_jwks_client().get_signing_key_from_jwt(id_token)
        claims = jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self.config.client_id,
        )
        if claims.get("iss") not in ISSUERS:
            raise jwt.InvalidIssuerError("Unexpected issuer")
        return claims

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.config.timeout))
        return self._client

    def _get_jwks_client(self) -> PyJWKClient:
        if self._jwks_client is None:
            self._jwks_client = PyJWKClient(JWKS_URL)
        return self._jwks_client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
