from dataclasses import dataclass
from typing import Any, Dict, Optional
import requests
from requests import RequestException

from studenthub.config.settings import settings


class AuthServiceError(Exception):
    pass


@dataclass
class AuthResult:
    uid: str
    email: str
    id_token: str
    refresh_token: str


class FirebaseAuthService:
    BASE_URL = "https://identitytoolkit.googleapis.com/v1"
    SIGN_UP_PATH = "/accounts:signUp"
    LOGIN_PATH = "/accounts:signInWithPassword"

    def __init__(self, api_key: str, base_url: Optional[str] = None) -> None:
        if not api_key:
            raise AuthServiceError("Missing FIREBASE_WEB_API_KEY in environment")
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    @classmethod
    def from_settings(cls) -> "FirebaseAuthService":
        return cls(settings.firebase_web_api_key)

    def sign_up(self, email: str, password: str) -> AuthResult:
        payload = {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        }
        response = self._post(self.SIGN_UP_PATH, payload)
        return self._to_result(response, email)

    def sign_in(self, email: str, password: str) -> AuthResult:
        payload = {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        }
        response = self._post(self.LOGIN_PATH, payload)
        return self._to_result(response, email)

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            res = requests.post(url, params={"key": self.api_key}, json=payload, timeout=15)
        except RequestException as exc:
            raise AuthServiceError("AUTH_SERVICE_UNAVAILABLE") from exc
        try:
            data = res.json()
        except ValueError:
            raise AuthServiceError("AUTH_SERVICE_UNAVAILABLE")

        if res.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            raise AuthServiceError(str(message or "AUTH_ERROR"))

        return data

    @staticmethod
    def _to_result(data: Dict[str, Any], email: str) -> AuthResult:
        uid = str(data.get("localId") or "")
        if not uid:
            raise AuthServiceError("INVALID_FIREBASE_SESSION")
        return AuthResult(
            uid=uid,
            email=str(data.get("email") or email),
            id_token=str(data.get("idToken") or ""),
            refresh_token=str(data.get("refreshToken") or ""),
        )
