"""
Data types shared by the explorer modules.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LoginKind(Enum):
    """Kind of principal behind an az session"""
    SERVICE_PRINCIPAL = "servicePrincipal"
    USER = "user"

    @classmethod
    def from_az(cls, value: Optional[str]) -> "LoginKind":
        """Map the `user.type` field of az account output."""
        if value == cls.SERVICE_PRINCIPAL.value:
            return cls.SERVICE_PRINCIPAL
        return cls.USER

    @property
    def label(self) -> str:
        return "service principal" if self is LoginKind.SERVICE_PRINCIPAL else "user"


@dataclass(frozen=True)
class SessionIdentity:
    """An authenticated principal"""
    name: str
    kind: LoginKind

    def matches(self, other: "SessionIdentity") -> bool:
        return self.kind == other.kind and self.name.casefold() == other.name.casefold()


@dataclass(frozen=True)
class ActiveSession:
    """One account entry known to the az CLI"""
    name: str
    kind: LoginKind
    tenant: str = ""
    subscription_id: Optional[str] = None

    @property
    def identity(self) -> SessionIdentity:
        return SessionIdentity(self.name, self.kind)


@dataclass(frozen=True)
class Subscription:
    name: str
    id: str
    is_default: bool = False


@dataclass(frozen=True)
class VaultEntry:
    name: str
    uri: Optional[str] = None


@dataclass(frozen=True)
class SearchHit:
    """A secret name matched by a cross-vault search"""
    vault: str
    secret: str
