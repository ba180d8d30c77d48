# api/dependencies.py
from fastapi import Depends
from db.engine import SessionLocal
from sqlalchemy.orm import Session
from db.repositories.user_repository import UserRepository
from api.services.user_service import UserService


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_user_service(db: Session = Depends(get_db)):
    user_repo = UserRepository(db)
    return UserService(user_repo)
