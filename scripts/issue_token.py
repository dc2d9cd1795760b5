# scripts/issue_token.py
"""
Выдает JWT для пользователя по email (создает пользователя, если его нет).
Удобно для ручной проверки API, пока токены не выдает внешний сервис авторизации.

    python scripts/issue_token.py admin@shop.local --role ADMIN
"""
import argparse
import sys
import os

# Хак для корректной работы импортов при запуске из корня проекта
sys.path.append(os.getcwd())

from app.core.security import create_access_token
from app.crud import user as crud_user
from app.db.session import SessionLocal


def main() -> int:
    parser = argparse.ArgumentParser(description="Issue an access token for a user")
    parser.add_argument("email")
    parser.add_argument("--full-name", default=None)
    parser.add_argument("--role", choices=["USER", "ADMIN"], default="USER")
    args = parser.parse_args()

    with SessionLocal() as db:
        user = crud_user.get_user_by_email(db, args.email)
        if user is None:
            user = crud_user.create_user(db, email=args.email, full_name=args.full_name, role=args.role)
            print(f"Created user {user.id} ({user.role}).")
        elif user.role != args.role:
            print(f"Warning: existing user {user.id} has role {user.role}, --role is ignored.")

        print(create_access_token({"sub": str(user.id)}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
