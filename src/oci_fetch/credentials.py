"""Interactive credential prompting."""

import getpass
import sys
from typing import Callable

from .core.types import Credentials
from .exceptions import CredentialReadError


def read_password(prompt: str) -> str:
    """Read a password from the terminal without echo.

    The prompt is written to stdout, like the username prompt.

    Raises:
        CredentialReadError: If stdin is not an interactive terminal
    """
    if not sys.stdin or not sys.stdin.isatty():
        raise CredentialReadError("cannot read password: stdin is not a terminal")
    return getpass.getpass(prompt, stream=sys.stdout)


def prompt_credentials(
    credentials: Credentials,
    input_func: Callable[[str], str] = input,
    password_func: Callable[[str], str] = read_password,
) -> Credentials:
    """Prompt for username and password, updating credentials in place.

    Existing values are shown as a hint and kept when an empty line is
    entered.

    Args:
        credentials: Credentials pre-populated from flags
        input_func: Reads one line for the username
        password_func: Reads the password without echo

    Returns:
        The same credentials object

    Raises:
        CredentialReadError: If input cannot be read
    """
    if credentials.username:
        prompt = f"username [{credentials.username}]: "
    else:
        prompt = "username: "

    try:
        username = input_func(prompt).strip()
    except (EOFError, OSError) as e:
        raise CredentialReadError(f"cannot read username: {str(e) or 'end of input'}") from e

    if username:
        credentials.username = username

    prompt = "password [*]: " if credentials.password else "password: "

    try:
        password = password_func(prompt).strip()
    except (EOFError, OSError) as e:
        raise CredentialReadError(f"cannot read password: {str(e) or 'end of input'}") from e

    if password:
        credentials.password = password

    return credentials
