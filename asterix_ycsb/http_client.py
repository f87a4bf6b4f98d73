from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import requests

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass
class HttpConfig:
    user_agent: str = "asterix-ycsb/0.1"
    # None means no timeout: a hung service blocks the caller
    connect_timeout: Optional[float] = None
    read_timeout: Optional[float] = None

    @property
    def timeout(self) -> Any:
        if self.connect_timeout is None and self.read_timeout is None:
            return None
        return (self.connect_timeout, self.read_timeout)


class HttpClient:
    """One requests.Session per client. Never retries."""

    def __init__(self, cfg: HttpConfig | None = None, session: requests.Session | None = None):
        self.cfg = cfg or HttpConfig()
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({"User-Agent": self.cfg.user_agent})

    def post_form(self, url: str, fields: dict[str, str], stream: bool = True) -> requests.Response:
        return self.session.post(
            url,
            data=fields,
            headers={"Content-Type": FORM_CONTENT_TYPE},
            timeout=self.cfg.timeout,
            stream=stream,
        )

    def close(self) -> None:
        self.session.close()
