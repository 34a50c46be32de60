"""
Скрипт инициализации базы данных
Создаёт таблицы и добавляет демонстрационные данные
Запуск (из каталога backend): python init_db.py
"""
from clinic_scheduler.database import SessionLocal, init_db
from clinic_scheduler.seed import seed_demo_data


def main():
    print("Создание таблиц...")
    init_db()
    print("Таблицы созданы!")

    db = SessionLocal()
    try:
        clinic = seed_demo_data(db)
        print(f"Клиника: {clinic.name} ({clinic.slug})")
    finally:
        db.close()

    print("\nИнициализация завершена!")
    print("Теперь можно запустить сервер: python -m uvicorn clinic_scheduler.main:app --reload")


if __name__ == "__main__":
    main()
