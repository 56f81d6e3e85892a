import os
from flask import Flask


def create_app():
    app = Flask(__name__)

    # Stored-data routes need PostgreSQL; the stateless scoring API does not.
    if os.environ.get("DATABASE_URL"):
        try:
            from . import datastore_pg as _pg
            try:
                minconn = int(os.environ.get("DB_POOL_MIN", "1"))
            except ValueError:
                minconn = 1
            try:
                maxconn = int(os.environ.get("DB_POOL_MAX", "10"))
            except ValueError:
                maxconn = 10
            _pg.init_pool(minconn=minconn, maxconn=maxconn)
        except Exception:  # pragma: no cover
            app.logger.exception("PostgreSQL pool initialization failed; continuing without pool")
    else:
        app.logger.warning("DATABASE_URL is not set; only the stateless scoring API is available")

    from . import routes  # type: ignore
    app.register_blueprint(routes.bp)

    app.logger.info("Scoring service ready")
    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port)
