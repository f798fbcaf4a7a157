"""HTTP interface: request-binding decorators and the Flask application."""

from __future__ import annotations

import dataclasses
import functools
import json
import logging
import os
from typing import Any, Callable, Mapping, Tuple

from flask import Blueprint, Flask, g, jsonify, request

from dialogtree.config import Config
from dialogtree.responses import Response, fail_with_error, fail_with_msg

logger = logging.getLogger(__name__)

UPLOADS_URL = "/uploads"
UPLOADS_DIR = "uploads"
API_PREFIX = "/api"

# (rule, HTTP method, view) triples served under the API prefix.
AI_ROUTES: Tuple[Tuple[str, str, Callable[..., Any]], ...] = ()


class BindError(ValueError):
    """Raised when request data does not fit the expected schema."""


def _build(schema: Callable[..., Any], data: Mapping[str, Any]) -> Any:
    if dataclasses.is_dataclass(schema):
        names = {spec.name for spec in dataclasses.fields(schema) if spec.init}
        data = {key: value for key, value in data.items() if key in names}
    try:
        return schema(**data)
    except (TypeError, ValueError) as exc:
        raise BindError(str(exc)) from exc


def _reply(response: Response) -> Any:
    return jsonify(response.to_dict())


def _json_source(raw: bytes, view_args: Mapping[str, Any]) -> Mapping[str, Any]:
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise BindError(str(exc)) from exc
    if not isinstance(data, dict):
        raise BindError("expected a JSON object")
    return data


def _query_source(raw: bytes, view_args: Mapping[str, Any]) -> Mapping[str, Any]:
    return request.args.to_dict()


def _uri_source(raw: bytes, view_args: Mapping[str, Any]) -> Mapping[str, Any]:
    return dict(view_args)


def _bind(
    label: str,
    extract: Callable[[bytes, Mapping[str, Any]], Mapping[str, Any]],
    schema: Callable[..., Any],
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                # Cached so the view can still read the body afterwards.
                raw = request.get_data(cache=True)
            except OSError as exc:
                return _reply(fail_with_error(exc))
            try:
                g.req = _build(schema, extract(raw, kwargs))
            except BindError as exc:
                return _reply(fail_with_msg(f"{label} 参数绑定错误: {exc}"))
            return view(*args, **kwargs)

        return wrapper

    return decorator


def bind_json(schema: Callable[..., Any]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Bind the JSON body to ``schema`` and store the result in ``flask.g.req``."""
    return _bind("JSON", _json_source, schema)


def bind_query(schema: Callable[..., Any]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Bind the query string to ``schema`` and store the result in ``flask.g.req``."""
    return _bind("Query", _query_source, schema)


def bind_uri(schema: Callable[..., Any]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Bind the URL path parameters to ``schema`` and store the result in ``flask.g.req``."""
    return _bind("URI", _uri_source, schema)


def register_ai_routes(blueprint: Blueprint) -> Blueprint:
    """Attach every entry of ``AI_ROUTES`` to the API blueprint."""
    for rule, method, view in AI_ROUTES:
        blueprint.add_url_rule(rule, view_func=view, methods=[method])
    return blueprint


def create_app(config: Config) -> Flask:
    """Build the application: uploaded files under /uploads and the API under /api."""
    app = Flask(
        __name__,
        static_url_path=UPLOADS_URL,
        static_folder=os.path.abspath(UPLOADS_DIR),
    )
    mode = config.system.gin_mode
    app.debug = mode in ("", "debug")
    app.testing = mode == "test"

    api = Blueprint("api", __name__)
    register_ai_routes(api)
    app.register_blueprint(api, url_prefix=API_PREFIX)
    return app


def run(config: Config) -> None:
    """Serve the application on the configured address."""
    app = create_app(config)
    addr = config.system.addr()
    host, _, port_text = addr.rpartition(":")
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"invalid port in address {addr!r}") from None
    logger.info("server running on: %s", addr)
    app.run(host=host, port=port)