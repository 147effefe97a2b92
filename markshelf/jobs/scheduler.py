import os

from apscheduler.schedulers.background import BackgroundScheduler

from markshelf.services.embedding_jobs import run_embedding_backfill


scheduler = BackgroundScheduler()


def run_embedding_sweep(app):
    stored = run_embedding_backfill(app)
    if stored:
        app.logger.info("Embedding sweep stored %s embeddings", stored)


def start_scheduler(app):
    if not app.config.get("SCHEDULER_ENABLED", True):
        return
    if not app.config.get("EMBEDDINGS_ENABLED", True):
        return
    if os.environ.get("WERKZEUG_RUN_MAIN") == "false":
        return

    interval_minutes = app.config["EMBEDDING_BACKFILL_INTERVAL_MINUTES"]
    if not scheduler.get_jobs():
        scheduler.add_job(
            run_embedding_sweep,
            "interval",
            minutes=interval_minutes,
            kwargs={"app": app},
            id="embedding_backfill",
            replace_existing=True,
        )
        scheduler.start()
