"""Global HTTP client and raw requests against a running node.

Counterpart of `curl` for quick checks of a node, e.g.

>>> http_client.get(runner.node(), "_cat/indices", params={"format": "json"})  # doctest: +SKIP
"""

import typing as tp

import requests

_session = None

DEFAULT_TIMEOUT = 60


def get_session() -> requests.Session:
    """Get a session object."""
    global _session  # noqa: PLW0603

    if _session is None:
        _session = requests.Session()
    return _session


def node_url(node: tp.Any, path: str) -> str:
    """Return URL of the `path` on the HTTP port of the given node."""
    port = node.settings.get("http.port")
    if not port:
        msg = "The node has no `http.port` setting."
        raise ValueError(msg)
    path = path if path.startswith("/") else f"/{path}"
    return f"http://localhost:{port}{path}"


def _resolve_url(target: tp.Any, path: str) -> str:
    if isinstance(target, str):
        return f"{target.rstrip('/')}/{path.lstrip('/')}" if path else target
    return node_url(node=target, path=path)


def request(method: str, target: tp.Any, path: str = "", **kwargs: tp.Any) -> requests.Response:
    """Send request to a node (or to an URL when `target` is a string)."""
    kwargs.setdefault("timeout", DEFAULT_TIMEOUT)
    return get_session().request(method, _resolve_url(target=target, path=path), **kwargs)


def get(target: tp.Any, path: str = "", **kwargs: tp.Any) -> requests.Response:
    return request("GET", target, path, **kwargs)


def post(target: tp.Any, path: str = "", **kwargs: tp.Any) -> requests.Response:
    return request("POST", target, path, **kwargs)


def put(target: tp.Any, path: str = "", **kwargs: tp.Any) -> requests.Response:
    return request("PUT", target, path, **kwargs)


def delete(target: tp.Any, path: str = "", **kwargs: tp.Any) -> requests.Response:
    return request("DELETE", target, path, **kwargs)


def json_parser(response: requests.Response) -> dict[str, tp.Any]:
    """Parse JSON content of the response."""
    try:
        return tp.cast(dict[str, tp.Any], response.json())
    except ValueError as exc:
        msg = f"Failed to access the content of `{response.url}`."
        raise ValueError(msg) from exc
