"""
Before Send Backend - ASGI entry point

    uvicorn main:app --reload
"""
from before_send.main import create_app

app = create_app()
