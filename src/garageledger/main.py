from __future__ import annotations

import argparse
import logging

from .cli import run_cli
from .config import ConfigError, load_config
from .db import Db, DbError
from .ledger import build_ledger
from .web_app import create_app

log = logging.getLogger("garageledger")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="garageledger", description="Repair shop operations ledger")
    parser.add_argument("--config", default="config.toml", help="path to config TOML (default: config.toml)")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("cli", help="interactive menu (default)")
    sub.add_parser("init-db", help="create tables from the bundled schema")
    serve = sub.add_parser("serve", help="run the JSON API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
        logging.basicConfig(
            level=cfg.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        db = Db(cfg.db)

        if args.command == "init-db":
            db.init_schema()
            print("Schema ready.")
        elif args.command == "serve":
            app = create_app(build_ledger(db, cfg))
            log.info("%s API listening on %s:%s", cfg.name, args.host, args.port)
            app.run(host=args.host, port=args.port)
        else:
            run_cli(build_ledger(db, cfg))
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except DbError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
