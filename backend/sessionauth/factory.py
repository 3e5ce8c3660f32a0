"""Application factory wiring Flask extensions and blueprints."""

from __future__ import annotations

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from sessionauth.core.config import BaseConfig, get_config, validate_config
from sessionauth.core.logger import configure_logging
from sessionauth.core.logger import init_app as init_logging


def create_app(
    config: str | type[BaseConfig] | object | None = None,
    *,
    instance_relative_config: bool = True,
    instance_config_filename: str = "config.py",
) -> Flask:
    """Build and configure the Flask application.

    :param config: Config class/object or import string; defaults to the
        class selected by ``APP_ENV``.
    :param instance_relative_config: Load ``instance/<instance_config_filename>`` overrides.
    :param instance_config_filename: Name of the optional instance config file.
    :returns: Configured application.
    :rtype: flask.Flask
    """

    app = Flask(__name__, instance_relative_config=instance_relative_config)

    app.config.from_object(get_config() if config is None else config)
    if instance_relative_config and instance_config_filename:
        app.config.from_pyfile(instance_config_filename, silent=True)
    validate_config(app.config)

    configure_logging(
        app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_FORMAT", "json")
    )

    # Trust X-Forwarded-* only when deployed behind a reverse proxy
    if app.config.get("USE_PROXYFIX"):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore[method-assign]

    from sessionauth.core import extensions

    extensions.init_app(app)

    init_logging(app)

    from sessionauth.core import cors

    cors.init_app(app)

    from sessionauth.api import init_app as init_api

    init_api(app)

    from sessionauth.core import errors

    errors.init_app(app)

    from sessionauth import cli as app_cli

    app_cli.init_app(app)

    return app
