"""The HTTP API server: routes, start-up initialisation and the command entry point."""

from __future__ import annotations

import argparse
import threading
from collections.abc import Callable, Sequence
from typing import Any

from flask import Flask

from . import config as config_module
from .config import DynamicConfig, LocalFileConfig
from .database import register_cluster
from .dynconfig import associate_etcd, load_file_config
from .etcd import EtcdClient
from .logger import REQUEST_ID_KEY, bind_fields, get_logger
from .middleware import install, json_endpoint
from .protocol import CreateUserReq, EmptyReq, GetUserDetailReq
from .usecases import UnexpectUsecase, UserUsecase

DEFAULT_CONFIG_PATH = "./conf.yml"


class HttpServer:
    """Wires the use cases to routes and brings up the clients they need."""

    def __init__(
        self,
        user_usecase: Any = None,
        unexpect_usecase: Any = None,
        *,
        local_cfg: LocalFileConfig | None = None,
        dynamic_cfg: DynamicConfig | None = None,
        etcd_factory: Callable[[list[str], float], Any] = EtcdClient,
    ) -> None:
        self.user_usecase = UserUsecase() if user_usecase is None else user_usecase
        self.unexpect_usecase = UnexpectUsecase() if unexpect_usecase is None else unexpect_usecase
        self.local_cfg = config_module.local_file_cfg if local_cfg is None else local_cfg
        self.dynamic_cfg = config_module.dynamic_cfg if dynamic_cfg is None else dynamic_cfg
        self.etcd_factory = etcd_factory
        self.etcd_client: Any = None
        self.stop = threading.Event()

    def create_app(self) -> Flask:
        """Build the Flask application with middleware and API routes."""
        app = Flask(__name__)
        install(app)
        app.add_url_rule(
            "/api/user/get_user_detail",
            endpoint="get_user_detail",
            view_func=json_endpoint(GetUserDetailReq, self.user_usecase.get_user_detail),
            methods=["GET"],
        )
        app.add_url_rule(
            "/api/user/create_user",
            endpoint="create_user",
            view_func=json_endpoint(CreateUserReq, self.user_usecase.create_user),
            methods=["POST"],
        )
        app.add_url_rule(
            "/api/unexpect/panic",
            endpoint="panic",
            view_func=json_endpoint(EmptyReq, self.unexpect_usecase.panic),
            methods=["GET"],
        )
        return app

    def _init_etcd(self) -> None:
        etcd = self.local_cfg.etcd
        self.etcd_client = self.etcd_factory(list(etcd.endpoints), etcd.dial_timeout)

    def _init_dynamic_config(self) -> None:
        associate_etcd(
            self.etcd_client,
            self.local_cfg.dym_cfg_key,
            self.dynamic_cfg,
            self.local_cfg.etcd.read_timeout,
            self.stop,
        )

    def _init_database(self) -> None:
        register_cluster(self.dynamic_cfg.default_db)

    def init(self, config_path: str = DEFAULT_CONFIG_PATH) -> HttpServer:
        """Load configuration and connect the clients, raising on the first failure."""
        steps: list[Callable[[], Any]] = [
            lambda: load_file_config(config_path, self.local_cfg),
            self._init_etcd,
            self._init_dynamic_config,
            self._init_database,
        ]
        with bind_fields(**{REQUEST_ID_KEY: "main-goroutine"}):
            for step in steps:
                try:
                    step()
                except Exception as exc:
                    get_logger().critical("initialize fail, err:[%s]", exc)
                    raise
        return self

    def close(self) -> None:
        """Stop following configuration changes and release the etcd client."""
        self.stop.set()
        if self.etcd_client is not None:
            self.etcd_client.close()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the HTTP API server.")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="local YAML config file")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args(argv)

    server = HttpServer()
    app = server.create_app()
    try:
        server.init(args.config)
    except Exception:
        return 1
    log = get_logger()
    log.info("Server run")
    try:
        app.run(host=args.host, port=args.port)
    except OSError as exc:
        print(exc)
        return 1
    finally:
        server.close()
    return 0