# Overview: Process entry point (python -m stockflow).

"""
Exit codes:
- 0: clean shutdown
- 1: fatal startup error (missing signing key, Store unreachable)
"""
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import create_app
from .extensions import db


def main() -> int:
    try:
        app = create_app()
    except RuntimeError as e:
        print(f"FATAL {e}", file=sys.stderr)
        return 1

    with app.app_context():
        try:
            db.session.execute(text("SELECT 1"))
            db.create_all()
        except SQLAlchemyError:
            app.logger.exception("Store unreachable at startup")
            return 1
        finally:
            db.session.remove()

    port = app.config["SERVER_PORT"]
    app.logger.info("Starting stockflow on port %s", port)
    app.run(host="0.0.0.0", port=port, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
