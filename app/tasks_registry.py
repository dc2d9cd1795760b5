# app/tasks_registry.py

from app.services import points_expiration

# --- Обертки задач. Каждая задача сама открывает сессию БД ---

async def run_expire_points():
    await points_expiration.expire_points_task()


# --- Словарь-реестр всех задач, доступных для ручного запуска ---
# Ключ - уникальное имя задачи, которое используется в API.
# 'function' - сама функция для вызова.
# 'description' - описание для отображения в админке.
# 'is_async' - флаг, чтобы FastAPI знал, как запускать задачу.

TASKS = {
    "expire_points": {
        "function": run_expire_points,
        "description": "Списывает (сжигает) бонусные баллы, у которых истек срок действия.",
        "is_async": True,
    },
}

def get_tasks_list():
    return [
        {"task_name": name, "description": data["description"]}
        for name, data in TASKS.items()
    ]
