"""HTTP service for the form engine.

This package provides the server half of the engine: the trusted
data-source and popin proxies, the rules endpoint and form validation.
"""

from formengine.http.app import create_app
from formengine.http.runner import run_http
from formengine.http.types import Host, HttpAppFactory, Port

__all__ = ["create_app", "run_http", "HttpAppFactory", "Host", "Port"]
