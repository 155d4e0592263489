"""
Entry point: run the publish scheduler polling loop.

Usage::

    python run.py            # poll forever
    python run.py --once     # single tick (for an external cron)
"""

import asyncio
import logging
import sys
import traceback

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


async def main(once: bool = False) -> None:
    from crosspost.accounts.token_store import TokenStore
    from crosspost.config import get_settings, validate_env
    from crosspost.database import get_db
    from crosspost.logging import LogComponent, init_logger
    from crosspost.notifications.email import EmailNotifier
    from crosspost.scheduling.publish_scheduler import PublishScheduler

    validate_env(strict=True)
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)

    db = await get_db()
    events = init_logger(log_dir=settings.log_dir, db=db)
    await events.info(LogComponent.STARTUP, "Publish scheduler starting", data={"once": once})

    notifier = EmailNotifier(settings.email)
    scheduler = PublishScheduler(
        db=db,
        token_store=TokenStore(db, policy=settings.policy),
        notifier=notifier,
        policy=settings.policy,
        content_bucket=settings.content_bucket,
    )

    try:
        if once:
            report = await scheduler.tick()
            logger.info("Tick finished: %s", report.to_dict())
        else:
            await scheduler.start()
    except Exception:
        await notifier.send_admin_alert("Publish scheduler crashed", traceback.format_exc())
        raise
    finally:
        await events.flush()


if __name__ == "__main__":
    try:
        asyncio.run(main(once="--once" in sys.argv[1:]))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(0)
