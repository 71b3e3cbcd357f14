from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Principal:
    subject: str
    email: str | None = None
    name: str | None = None


def parse_bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", maxsplit=1)[1].strip()
    return token or None
