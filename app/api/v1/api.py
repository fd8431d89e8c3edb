from fastapi import APIRouter
from app.api.v1.auth import routes as auth
from app.api.v1.users import routes as users
from app.api.v1.contact import routes as contact

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(contact.router)
