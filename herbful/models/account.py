"""
Admin account records kept in local state.
"""

from dataclasses import dataclass


@dataclass
class AdminUser:
    """The signed-in admin as exposed to the screens (no password)."""
    username: str
    email: str

    def to_dict(self) -> dict:
        return {"username": self.username, "email": self.email}


@dataclass
class Credentials:
    username: str
    password: str  # plaintext, mock auth only
    email: str

    @classmethod
    def from_dict(cls, data: dict) -> "Credentials":
        return cls(
            username=data["username"],
            password=data["password"],
            email=data["email"]
        )

    def to_dict(self) -> dict:
        return {"username": self.username, "password": self.password, "email": self.email}
