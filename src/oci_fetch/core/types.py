"""Core data types."""

from dataclasses import dataclass, field


@dataclass
class Credentials:
    """Registry username and password.

    Filled from command line flags and optionally overwritten in place by
    interactive prompting. Never written to disk.
    """

    username: str = ""
    password: str = ""

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class FetchOptions:
    """Options for a single fetch, built once from the command line."""

    source: str
    destination: str
    credentials: Credentials = field(default_factory=Credentials)
    prompt_credentials: bool = False
    debug: bool = False
    insecure_allow_http: bool = False
    insecure_skip_tls_verification: bool = False
