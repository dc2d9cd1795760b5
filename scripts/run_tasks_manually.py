# run_tasks_manually.py
import asyncio
import logging
import sys
import os

# Хак для корректной работы импортов при запуске из корня проекта
sys.path.append(os.getcwd())

from app.core.logging_config import setup_logging
from app.tasks_registry import TASKS

logger = logging.getLogger(__name__)


async def main(task_names):
    """
    Поочередно запускает задачи из реестра.
    Без аргументов запускаются все задачи.
    """
    unknown = [name for name in task_names if name not in TASKS]
    if unknown:
        print(f"Unknown tasks: {', '.join(unknown)}. Available: {', '.join(TASKS)}")
        return 1

    to_run = task_names or list(TASKS)
    print("--- Manual Task Runner ---")
    for index, name in enumerate(to_run, start=1):
        print(f"\n[{index}/{len(to_run)}] Running: {name}...")
        await TASKS[name]["function"]()
        print("Done.")

    print("\n--- All tasks finished ---")
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main(sys.argv[1:])))
