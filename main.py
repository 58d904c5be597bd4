import argparse
import time
import schedule
import logging
import sys

from config.app_config import AUTO_RELEASE_INTERVAL_MINUTES
from services.engine import SettlementEngine

# Configure Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("settlement_worker.log")
    ]
)


def run_auto_release_cycle():
    logging.info("Starting Escrow Auto-Release Cycle...")
    try:
        completed = SettlementEngine().run_auto_release()
        logging.info(f"Cycle Complete. {len(completed)} campaigns auto-completed.")
    except Exception as e:
        logging.error(f"Error in auto-release cycle: {e}")


def start_scheduler():
    logging.info(f"Starting Auto-Release Scheduler (Every {AUTO_RELEASE_INTERVAL_MINUTES} Minutes)...")
    # Run once immediately
    run_auto_release_cycle()

    schedule.every(AUTO_RELEASE_INTERVAL_MINUTES).minutes.do(run_auto_release_cycle)

    while True:
        schedule.run_pending()
        time.sleep(60)


def main():
    parser = argparse.ArgumentParser(description="Dexter Settlement Worker")
    parser.add_argument("--mode", choices=["once", "schedule"], default="schedule", help="Run once or schedule")
    args = parser.parse_args()

    if args.mode == "schedule":
        start_scheduler()
    else:
        run_auto_release_cycle()


if __name__ == "__main__":
    main()
