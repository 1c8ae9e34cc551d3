"""
JSON-over-HTTP helpers for the Chroma REST contract.

Transport failures surface as ConnectionError (unreachable), TimeoutError
(no answer within the bound) or RuntimeError (non-2xx status with body).
"""

import json
import socket
from typing import Any, Union
from urllib import request
from urllib.error import HTTPError, URLError


def _send(req: Union[str, request.Request], url: str, timeout: float) -> Any:
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except HTTPError as exc:
        body = exc.read().decode("utf-8") if exc.fp else ""
        raise RuntimeError(f"HTTP {exc.code} calling {url}: {body}") from exc
    except URLError as exc:
        if isinstance(exc.reason, (TimeoutError, socket.timeout)):
            raise TimeoutError(f"Timed out after {timeout}s calling {url}") from exc
        raise ConnectionError(f"Cannot reach {url}: {exc.reason}") from exc
    except TimeoutError as exc:
        raise TimeoutError(f"Timed out after {timeout}s calling {url}") from exc

    # delete and upsert answer with an empty body on some server versions
    if not raw.strip():
        return {}
    return json.loads(raw)


def post_json(url: str, payload: dict, timeout: float = 30) -> Any:
    data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    return _send(req, url, timeout)


def get_json(url: str, timeout: float = 30) -> Any:
    return _send(url, url, timeout)
