from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SessionContext:
    """Identity resolved by the server for a single request."""

    uid: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.uid and self.uid.strip())

    @classmethod
    def from_headers(cls, user_id: Optional[str], email: Optional[str] = None) -> "SessionContext":
        uid = (user_id or "").strip() or None
        return cls(uid=uid, email=(email or "").strip() or None)
